"""HTTP transport for the Tableau REST API."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import ConfigReader
from .exceptions import TableauTimeoutError, TableauTransportError
from .rate_limiter import RateLimiter

USER_AGENT = 'tableau-migrate/0.1.0'


class RestRequest(BaseModel):
    """A fully built REST request, re-sendable as-is."""

    method: str = Field(..., description='HTTP method')
    url: str = Field(..., description='Absolute request URL')
    params: Dict[str, str] = Field(default_factory=dict, description='Query string')
    headers: Dict[str, str] = Field(default_factory=dict, description='Headers')
    json_body: Optional[Any] = Field(default=None, description='JSON request body')
    data: Optional[bytes] = Field(default=None, description='Raw request body')
    requires_auth: bool = Field(
        default=True, description='Attach the session token to this request'
    )


class RestResponse(BaseModel):
    """Standard REST response wrapper."""

    status_code: int
    data: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)
    content: bytes = b''

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300


SendFunc = Callable[[RestRequest], Awaitable[RestResponse]]


class HttpTransport:
    """Dispatches requests with aiohttp.

    Raises :class:`TableauTransportError` for network failures and
    :class:`TableauTimeoutError` when the configured timeout elapses; HTTP
    error statuses are returned as responses.
    """

    def __init__(
        self,
        config_reader: ConfigReader,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config_reader = config_reader
        self.rate_limiter = rate_limiter
        self._session = session
        self.logger = logger.bind(component='HttpTransport')

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={'Accept': 'application/json', 'User-Agent': USER_AGENT}
            )
        return self._session

    async def __call__(self, request: RestRequest) -> RestResponse:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        timeout = aiohttp.ClientTimeout(
            total=self.config_reader.get().resilience.timeout
        )
        session = self._get_session()

        try:
            async with session.request(
                method=request.method,
                url=request.url,
                params=request.params or None,
                headers=request.headers,
                json=request.json_body if request.data is None else None,
                data=request.data,
                timeout=timeout,
            ) as response:
                content = await response.read()
                headers = dict(response.headers)
                status = response.status
        except asyncio.TimeoutError as e:
            self.logger.warning(f'{request.method} {request.url} timed out')
            raise TableauTimeoutError(f'Request timed out: {request.url}') from e
        except aiohttp.ClientError as e:
            self.logger.warning(f'Network error during {request.method} {request.url}: {e}')
            raise TableauTransportError(f'Network error: {e}') from e

        self.logger.debug(f'{request.method} {request.url} -> {status}')
        return RestResponse(
            status_code=status,
            data=_parse_body(content, headers),
            headers=headers,
            content=content,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


def _parse_body(content: bytes, headers: Dict[str, str]) -> Any:
    if not content:
        return None

    content_type = headers.get('Content-Type', headers.get('content-type', ''))
    if 'json' in content_type:
        try:
            return json.loads(content)
        except ValueError:
            pass

    if content_type.startswith(('text/', 'application/xml')) or 'json' in content_type:
        return content.decode('utf-8', errors='replace')

    return None
