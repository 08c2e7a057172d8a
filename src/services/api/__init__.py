"""Catalog API access.

- api_base: moving-window rate limiter and date helpers
- request_executor: HTTP execution with retries and error mapping
- catalog_models: pydantic models of catalog track payloads
- catalog_client: search, track details, anonymous token and artwork download
"""

from .api_base import EnhancedRateLimiter
from .catalog_client import CatalogClient, extract_next_data
from .catalog_models import CatalogTrack
from .request_executor import ApiRequestExecutor

__all__ = [
    "ApiRequestExecutor",
    "CatalogClient",
    "CatalogTrack",
    "EnhancedRateLimiter",
    "extract_next_data",
]
