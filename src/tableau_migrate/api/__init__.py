"""Tableau REST API client layer."""

from .api_client import ApiClient, SitesApiClient
from .client import TableauClient
from .exceptions import (
    ContentTypeNotRegisteredError,
    TableauAPIError,
    TableauAuthenticationError,
    TableauRateLimitError,
    TableauTimeoutError,
    TableauTransportError,
)
from .paging import ApiListPager, PageFetchError
from .results import PagedResult, Result

__all__ = [
    'ApiClient',
    'ApiListPager',
    'ContentTypeNotRegisteredError',
    'PageFetchError',
    'PagedResult',
    'Result',
    'SitesApiClient',
    'TableauAPIError',
    'TableauAuthenticationError',
    'TableauClient',
    'TableauRateLimitError',
    'TableauTimeoutError',
    'TableauTransportError',
]
