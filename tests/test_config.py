"""Tests for configuration resolution."""

import pytest

from axiom_client import Client, ConfigurationError
from axiom_client.config import (
    API_URL,
    DEFAULT_EDGE_URL,
    get_axiom_headers,
    resolve_config,
    validate_axiom_config,
)


class TestResolveConfig:

    def test_cloud_defaults_use_the_edge(self):
        config = resolve_config(token="xaat-1", use_env=False)

        assert config.api_url == API_URL
        assert config.ingest_url == DEFAULT_EDGE_URL
        assert config.uses_edge is True

    def test_region_selects_edge_host(self):
        config = resolve_config(token="xaat-1", region="eu-central-1.aws.edge.axiom.co", use_env=False)

        assert config.ingest_url == "https://eu-central-1.aws.edge.axiom.co"
        assert config.uses_edge is True

    def test_explicit_ingest_url_wins_over_region(self):
        config = resolve_config(token="xaat-1", ingest_url="https://ingest.example.com",
                                region="eu-central-1.aws.edge.axiom.co", use_env=False)
        assert config.ingest_url == "https://ingest.example.com"

    def test_self_hosted_uses_api_url(self):
        config = resolve_config(token="xaat-1", url="https://axiom.internal", use_env=False)

        assert config.ingest_url == "https://axiom.internal"
        assert config.uses_edge is False

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("AXIOM_TOKEN", "xaat-env")
        monkeypatch.setenv("AXIOM_URL", "https://axiom.internal")

        config = resolve_config()

        assert config.token == "xaat-env"
        assert config.api_url == "https://axiom.internal"

    def test_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("AXIOM_TOKEN", "xaat-env")
        config = resolve_config(token="xaat-arg")
        assert config.token == "xaat-arg"

    def test_missing_token(self):
        with pytest.raises(ConfigurationError):
            resolve_config(use_env=False)

    def test_personal_token_needs_org_id_on_cloud(self):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_config(token="xapt-personal", use_env=False)
        assert "Org ID" in str(exc_info.value)

    def test_personal_token_with_org_id(self):
        config = resolve_config(token="xapt-personal", org_id="acme", use_env=False)
        assert config.headers()["X-Axiom-Org-Id"] == "acme"

    def test_invalid_url(self):
        with pytest.raises(ConfigurationError):
            resolve_config(token="xaat-1", url="ftp://nope", use_env=False)


class TestHelpers:

    def test_headers(self):
        headers = get_axiom_headers("xaat-1", additional_headers={"X-Extra": "1"})
        assert headers == {"Authorization": "Bearer xaat-1", "X-Extra": "1"}

    def test_validate_returns_message(self):
        assert validate_axiom_config({"token": ""}).startswith("Error:")
        assert validate_axiom_config({"token": "xaat-1"}) is None


class TestClientConstruction:

    async def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AXIOM_TOKEN", "xaat-env")
        monkeypatch.setenv("AXIOM_REGION", "us-east-1.aws.edge.axiom.co")

        async with Client.from_env() as client:
            assert client.config.token == "xaat-env"
            assert client.config.ingest_url == "https://us-east-1.aws.edge.axiom.co"
