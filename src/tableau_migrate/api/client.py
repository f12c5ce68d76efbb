"""Tableau REST API client implementation."""

import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

from loguru import logger

from ..config.config import ConfigReader, SiteConnectionConfig
from .auth import AuthenticationHandler, AuthenticationTokenProvider
from .exceptions import (
    TableauAPIError,
    TableauAuthenticationError,
    TableauConflictError,
    TableauNotFoundError,
    TableauPermissionError,
    TableauRateLimitError,
)
from .rate_limiter import RateLimiter
from .resilience import CachedRetryPolicyBuilder, ResilienceHandler, RetryPolicyBuilder
from .session import ServerSessionProvider
from .transport import HttpTransport, RestRequest, RestResponse, SendFunc


class TableauClient:
    """Tableau REST API client for a single site connection.

    Every request goes through ``AuthenticationHandler(ResilienceHandler(transport))``
    so a rejected session token is refreshed once per request, never once per
    retry attempt.
    """

    def __init__(
        self,
        connection: SiteConnectionConfig,
        config_reader: ConfigReader,
        session: Optional[ServerSessionProvider] = None,
        transport: Optional[SendFunc] = None,
        policy_builder: Optional[CachedRetryPolicyBuilder] = None,
    ):
        """Initialize Tableau client.

        Args:
            connection: Site connection configuration
            config_reader: Live configuration reader
            session: Session provider (a new one if not given)
            transport: Raw send function (aiohttp transport if not given)
            policy_builder: Retry policy cache (a new one if not given)
        """
        self.connection = connection
        self.config_reader = config_reader
        self.session = session or ServerSessionProvider()
        self.base_url = connection.server_url.rstrip('/') + '/api'

        if transport is None:
            resilience = config_reader.get().resilience
            limiter = RateLimiter(
                resilience.rate_limit_per_second, max_wait=resilience.timeout
            )
            transport = HttpTransport(config_reader, limiter)
        self.transport = transport

        self.policy_builder = policy_builder or CachedRetryPolicyBuilder(
            RetryPolicyBuilder(), config_reader
        )
        self.token_provider = AuthenticationTokenProvider(self.session)
        self._send = AuthenticationHandler(
            ResilienceHandler(self.transport, self.policy_builder),
            self.token_provider,
        )

        logger.info(f'Initialized Tableau client for {connection.server_url}')

    def build_url(
        self,
        path: str,
        site_scoped: bool = True,
        api_version: Optional[str] = None,
    ) -> str:
        """Build full API URL from an endpoint path.

        Args:
            path: Endpoint path relative to the site (or API root)
            site_scoped: Prefix the path with ``sites/{site_id}``
            api_version: REST API version, defaults to the session version

        Returns:
            Full API URL
        """
        version = api_version or self.session.api_version
        url = f'{self.base_url}/{version}'

        if site_scoped:
            if self.session.site_id is None:
                raise TableauAuthenticationError(
                    f'Cannot call site endpoint {path} before signing in'
                )
            url += f'/sites/{self.session.site_id}'

        path = path.strip('/')
        return f'{url}/{path}' if path else url

    async def send(self, request: RestRequest) -> RestResponse:
        """Send a request through the authentication and retry pipeline."""
        return await self._send(request)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        site_scoped: bool = True,
        requires_auth: bool = True,
        api_version: Optional[str] = None,
    ) -> RestResponse:
        """Make an API request and map error statuses to exceptions.

        Args:
            method: HTTP method
            path: Endpoint path
            params: Query parameters
            json: JSON request body
            data: Raw request body
            headers: Extra request headers
            site_scoped: Whether the endpoint lives under the current site
            requires_auth: Whether to attach the session token
            api_version: Override the session's REST API version

        Returns:
            API response

        Raises:
            TableauAPIError: For various API errors
        """
        request = RestRequest(
            method=method,
            url=self.build_url(path, site_scoped=site_scoped, api_version=api_version),
            params={k: str(v) for k, v in (params or {}).items() if v is not None},
            headers=dict(headers or {}),
            json_body=json,
            data=data,
            requires_auth=requires_auth,
        )
        response = await self.send(request)
        return self._handle_response(response)

    async def get(
        self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> RestResponse:
        return await self.request('GET', path, params=params, **kwargs)

    async def post(self, path: str, json: Optional[Any] = None, **kwargs) -> RestResponse:
        return await self.request('POST', path, json=json, **kwargs)

    async def put(self, path: str, json: Optional[Any] = None, **kwargs) -> RestResponse:
        return await self.request('PUT', path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs) -> RestResponse:
        return await self.request('DELETE', path, **kwargs)

    def _handle_response(self, response: RestResponse) -> RestResponse:
        """Raise the matching exception for an error response.

        Args:
            response: Raw REST response

        Returns:
            The response, when successful

        Raises:
            TableauAPIError: For various API errors
        """
        status = response.status_code
        if status < 400:
            return response

        message, error_code = _error_details(response)

        if status == 429:
            retry_after = _retry_after_seconds(response.headers)
            raise TableauRateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status,
            )

        error_types = {
            401: TableauAuthenticationError,
            403: TableauPermissionError,
            404: TableauNotFoundError,
            409: TableauConflictError,
        }
        error_type = error_types.get(status, TableauAPIError)

        raise error_type(
            f'API request failed: {message}',
            status_code=status,
            response_data=response.data if isinstance(response.data, dict) else None,
            error_code=error_code,
        )

    async def close(self) -> None:
        """Close the client session."""
        close = getattr(self.transport, 'close', None)
        if close is not None:
            await close()
        logger.info('Tableau client session closed')

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


DEFAULT_RETRY_AFTER = 60


def _retry_after_seconds(headers: Dict[str, str]) -> int:
    """Seconds to wait from a Retry-After header, in either delay or HTTP-date form."""
    value = next(
        (v for k, v in headers.items() if k.lower() == 'retry-after'), None
    )
    if value is None:
        return DEFAULT_RETRY_AFTER

    value = value.strip()
    if value.isdigit():
        return int(value)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if retry_at is None:
        return DEFAULT_RETRY_AFTER
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    delay = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(0, math.ceil(delay))


def _error_details(response: RestResponse):
    data = response.data
    if isinstance(data, dict) and isinstance(data.get('error'), dict):
        error = data['error']
        summary = error.get('summary', f'HTTP {response.status_code}')
        detail = error.get('detail')
        message = f'{summary}: {detail}' if detail else summary
        return message, error.get('code')

    if isinstance(data, str) and data:
        return f'HTTP {response.status_code}: {data}', None

    return f'HTTP {response.status_code}', None
