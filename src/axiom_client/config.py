"""
Axiom API configuration

Handles environment variables, authentication headers, and base URL resolution
for the Axiom platform API.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigurationError

# Axiom Cloud API
API_URL = "https://api.axiom.co"

# Default edge URL for Axiom Cloud (US East 1), used for ingest and query
DEFAULT_EDGE_URL = "https://us-east-1.aws.edge.axiom.co"

ORG_ID_HEADER = "X-Axiom-Org-Id"


def is_personal_token(token: str) -> bool:
    """Personal access tokens need an org id when talking to Axiom Cloud."""
    return token.startswith("xapt-")


@dataclass(frozen=True)
class ClientConfig:
    """Resolved connection settings for a client."""
    token: str
    api_url: str = API_URL
    ingest_url: str = DEFAULT_EDGE_URL
    org_id: Optional[str] = None
    uses_edge: bool = True
    verify: bool = True

    def headers(self) -> Dict[str, str]:
        """Default headers sent with every request."""
        return get_axiom_headers(self.token, self.org_id)


def get_axiom_config(use_dotenv: bool = True) -> Dict[str, str]:
    """
    Read Axiom settings from environment variables.

    Args:
        use_dotenv: Load a .env file first (existing variables win)

    Returns:
        Dictionary with token, org_id, url, ingest_url and region ("" when unset)
    """
    if use_dotenv:
        load_dotenv(override=False)

    return {
        "token": os.getenv("AXIOM_TOKEN", ""),
        "org_id": os.getenv("AXIOM_ORG_ID", ""),
        "url": os.getenv("AXIOM_URL", ""),
        "ingest_url": os.getenv("AXIOM_INGEST_URL", ""),
        "region": os.getenv("AXIOM_REGION", ""),
    }


def validate_axiom_config(config: Optional[Dict[str, str]] = None) -> Optional[str]:
    """
    Validate Axiom API configuration.

    Returns:
        Error message if configuration is invalid, None if valid
    """
    config = config if config is not None else get_axiom_config()

    if not config.get("token"):
        return "Error: Axiom API token not configured. Please set the AXIOM_TOKEN environment variable."

    api_url = config.get("url") or API_URL
    if api_url == API_URL and not config.get("org_id") and is_personal_token(config["token"]):
        return "Error: Missing Org ID for Personal Access Token. Please set the AXIOM_ORG_ID environment variable."

    for key in ("url", "ingest_url"):
        value = config.get(key)
        if value and urlparse(value).scheme not in ("http", "https"):
            return f"Error: Invalid {key}: {value!r}"

    return None


def resolve_config(
    token: Optional[str] = None,
    org_id: Optional[str] = None,
    url: Optional[str] = None,
    ingest_url: Optional[str] = None,
    region: Optional[str] = None,
    verify: bool = True,
    use_env: bool = True
) -> ClientConfig:
    """
    Resolve client settings: explicit arguments first, then the environment,
    then Axiom Cloud defaults.

    Ingest/query requests go to, in order of priority: an explicit ingest URL,
    the edge host of a region, the default cloud edge (when the API URL is the
    cloud API), or the API URL itself.

    Raises:
        ConfigurationError: If the token is missing or settings are invalid
    """
    env = get_axiom_config() if use_env else {}

    settings = {
        "token": token or env.get("token", ""),
        "org_id": org_id or env.get("org_id", ""),
        "url": url or env.get("url", ""),
        "ingest_url": ingest_url or env.get("ingest_url", ""),
        "region": region or env.get("region", ""),
    }

    error = validate_axiom_config(settings)
    if error:
        raise ConfigurationError(error)

    api_url = settings["url"] or API_URL
    explicit_ingest = settings["ingest_url"]
    region = settings["region"].rstrip("/")

    uses_edge = (
        bool(region)
        or ".edge." in explicit_ingest
        or "/v1/ingest" in explicit_ingest
        or (not explicit_ingest and api_url == API_URL)
    )

    if explicit_ingest:
        resolved_ingest = explicit_ingest
    elif region:
        resolved_ingest = f"https://{region}"
    elif api_url == API_URL:
        resolved_ingest = DEFAULT_EDGE_URL
    else:
        resolved_ingest = api_url

    return ClientConfig(
        token=settings["token"],
        api_url=api_url,
        ingest_url=resolved_ingest,
        org_id=settings["org_id"] or None,
        uses_edge=uses_edge,
        verify=verify,
    )


def get_axiom_headers(token: str, org_id: Optional[str] = None,
                      additional_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Build Axiom API headers with optional additional headers.

    Args:
        token: API or personal access token
        org_id: Organization id, required for personal tokens on Axiom Cloud
        additional_headers: Optional additional headers to merge

    Returns:
        Complete headers dictionary for API requests
    """
    headers = {"Authorization": f"Bearer {token}"}
    if org_id:
        headers[ORG_ID_HEADER] = org_id

    if additional_headers:
        headers.update(additional_headers)

    return headers


def is_axiom_configured() -> bool:
    """
    Check if the Axiom API is configured through the environment.

    Returns:
        True if the required environment variables are set
    """
    return validate_axiom_config() is None
