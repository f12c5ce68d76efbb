"""Session token refresh and the authentication request handler."""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from .exceptions import TableauAuthenticationError
from .session import ServerSessionProvider
from .transport import RestRequest, RestResponse, SendFunc

AUTH_HEADER = 'X-Tableau-Auth'

RefreshFunc = Callable[[], Awaitable[str]]


class AuthenticationTokenProvider:
    """Owns session token refresh for one site connection.

    Concurrent callers that observe an expired token share a single refresh:
    the first caller starts it, everyone else awaits the same future. A caller
    whose stale token has already been replaced gets the new token without a
    second refresh. A failed refresh is remembered for its stale token, so
    late callers holding that token get the same error instead of signing in
    again.
    """

    def __init__(
        self,
        session: ServerSessionProvider,
        refresh: Optional[RefreshFunc] = None,
    ):
        self.session = session
        self._refresh = refresh
        self._lock = asyncio.Lock()
        self._in_flight: Optional['asyncio.Future[str]'] = None
        self._failed_token: Optional[str] = None
        self._failed_error: Optional[TableauAuthenticationError] = None
        self.refresh_count = 0
        self.logger = logger.bind(component='AuthenticationTokenProvider')

    @property
    def token(self) -> Optional[str]:
        return self.session.token

    def set_refresh(self, refresh: RefreshFunc) -> None:
        self._refresh = refresh

    async def request_refresh(self, stale_token: Optional[str]) -> str:
        """Refresh the session token, collapsing concurrent requests.

        Args:
            stale_token: Token that was rejected by the server

        Returns:
            The current token after refresh

        Raises:
            TableauAuthenticationError: If the refresh failed
        """
        async with self._lock:
            current = self.session.token
            if self._in_flight is None and current is not None and current != stale_token:
                return current

            if (
                self._in_flight is None
                and self._failed_error is not None
                and stale_token == self._failed_token
                and current == stale_token
            ):
                raise self._failed_error

            if self._in_flight is None:
                if self._refresh is None:
                    raise TableauAuthenticationError(
                        'Session expired and no token refresh is configured'
                    )
                self._in_flight = asyncio.ensure_future(self._run_refresh(stale_token))
            in_flight = self._in_flight

        return await asyncio.shield(in_flight)

    async def _run_refresh(self, stale_token: Optional[str]) -> str:
        self.refresh_count += 1
        self.logger.info('Session token rejected, signing in again')
        try:
            token = await self._refresh()
        except TableauAuthenticationError as e:
            self._remember_failure(stale_token, e)
            raise
        except Exception as e:
            error = TableauAuthenticationError(f'Token refresh failed: {e}')
            self._remember_failure(stale_token, error)
            raise error from e
        finally:
            self._in_flight = None

        self._failed_token = None
        self._failed_error = None
        self.session.set_token(token)
        return token

    def _remember_failure(
        self, stale_token: Optional[str], error: TableauAuthenticationError
    ) -> None:
        self.logger.error(f'Token refresh failed: {error}')
        self._failed_token = stale_token
        self._failed_error = error


class AuthenticationHandler:
    """Attaches the session token and retries once after a refreshed sign-in."""

    def __init__(self, inner: SendFunc, token_provider: AuthenticationTokenProvider):
        self._inner = inner
        self.token_provider = token_provider

    async def __call__(self, request: RestRequest) -> RestResponse:
        if not request.requires_auth:
            return await self._inner(request)

        sent_token = self.token_provider.token
        self._attach(request, sent_token)

        response = await self._inner(request)
        if response.status_code != 401:
            return response

        new_token = await self.token_provider.request_refresh(sent_token)
        self._attach(request, new_token)

        response = await self._inner(request)
        if response.status_code == 401:
            raise TableauAuthenticationError(
                'Authentication failed after token refresh', status_code=401
            )
        return response

    @staticmethod
    def _attach(request: RestRequest, token: Optional[str]) -> None:
        if token is not None:
            request.headers[AUTH_HEADER] = token
