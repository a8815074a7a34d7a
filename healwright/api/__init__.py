"""
API testing client and response validators.
"""

from healwright.api.client import (
    ApiClient,
    ApiRequestOptions,
    ApiResponseData,
    HttpxTransport,
    PlaywrightTransport,
    Transport,
    TransportError,
)

__all__ = [
    "ApiClient",
    "ApiRequestOptions",
    "ApiResponseData",
    "HttpxTransport",
    "PlaywrightTransport",
    "Transport",
    "TransportError",
]
