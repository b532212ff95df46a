"""
Async Python client for the Axiom observability platform.
"""

__version__ = "0.1.0"

from .client import Client
from .config import ClientConfig, resolve_config
from .datasets import Dataset, DatasetField, DatasetInfo, DatasetsClient, TrimResult
from .encoding import ContentEncoding, ContentType, EncodedBatch, IngestOptions, encode_events
from .errors import (
    APIError,
    AxiomError,
    ClientError,
    ConfigurationError,
    DecodingError,
    EncodingError,
    LimitExceededError,
    RateLimitExceededError,
    TransportError,
)
from .ingest import IngestFailure, IngestStatus
from .limits import Limits
from .logging import setup_logging
from .query import AplBuilder, AplResultFormat, QueryOptions
from .results import CellKind, QueryResult, QueryStatus, Row, Table, decode_query_result
from .retry import RetryPolicy

__all__ = [
    'Client',
    'ClientConfig',
    'resolve_config',
    'setup_logging',

    # Ingest
    'ContentType',
    'ContentEncoding',
    'EncodedBatch',
    'IngestOptions',
    'IngestStatus',
    'IngestFailure',
    'encode_events',

    # Query
    'AplBuilder',
    'AplResultFormat',
    'QueryOptions',
    'QueryResult',
    'QueryStatus',
    'CellKind',
    'Row',
    'Table',
    'decode_query_result',

    # Datasets
    'Dataset',
    'DatasetField',
    'DatasetInfo',
    'DatasetsClient',
    'TrimResult',

    # Retry and errors
    'RetryPolicy',
    'Limits',
    'AxiomError',
    'APIError',
    'ClientError',
    'ConfigurationError',
    'DecodingError',
    'EncodingError',
    'LimitExceededError',
    'RateLimitExceededError',
    'TransportError',
]
