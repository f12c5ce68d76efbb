"""Sign-in, sign-out and the per-site client registry."""

from typing import Dict, Optional

from loguru import logger

from ..config.config import ConfigReader, SiteConnectionConfig
from ..files.store import ContentFileStore
from ..models.content import ContentType
from .client import TableauClient
from .content import (
    CLIENT_ERRORS,
    ContentApiClient,
    DataSourcesApiClient,
    GroupsApiClient,
    ProjectsApiClient,
    UsersApiClient,
    WorkbooksApiClient,
)
from .exceptions import ContentTypeNotRegisteredError, TableauAuthenticationError
from .references import ContentReferenceFinder
from .results import Result
from .session import MINIMUM_API_VERSION, ServerVersion, SignInInfo


class ApiClient:
    """Entry point for one site connection.

    Fetches the server version when none is cached, signs in with a personal
    access token and hands out a :class:`SitesApiClient` for the signed-in
    site.
    """

    def __init__(
        self,
        connection: SiteConnectionConfig,
        config_reader: ConfigReader,
        file_store: ContentFileStore,
        client: Optional[TableauClient] = None,
    ):
        """Initialize API client.

        Args:
            connection: Site connection settings
            config_reader: Live configuration reader
            file_store: Store for downloaded content files
            client: REST client (built from the connection if not given)
        """
        self.connection = connection
        self.config_reader = config_reader
        self.file_store = file_store
        self.client = client or TableauClient(connection, config_reader)
        self.session = self.client.session
        self.logger = logger.bind(component='ApiClient')

    async def get_server_info(self) -> Result[ServerVersion]:
        try:
            response = await self.client.get(
                'serverinfo',
                site_scoped=False,
                requires_auth=False,
                api_version=MINIMUM_API_VERSION,
            )
            info = (response.data or {})['serverInfo']
            product = info.get('productVersion') or {}
            return Result.succeeded(
                ServerVersion(
                    product_version=product.get('value', ''),
                    build=product.get('build'),
                    rest_api_version=info['restApiVersion'],
                )
            )
        except CLIENT_ERRORS as e:
            return Result.failed(e)

    async def sign_in(self) -> Result['SitesApiClient']:
        """Sign in to the configured site.

        Returns:
            Result with the site client; on failure the session is untouched
        """
        if self.session.version is None:
            version = await self.get_server_info()
            if not version:
                self.logger.error(f'Failed to read server info: {version.error}')
                return version.cast_failure()
            self.session.set_version(version.value)

        try:
            sign_in = await self._request_sign_in()
        except CLIENT_ERRORS as e:
            self.logger.error(f'Sign-in to {self.connection.server_url} failed: {e}')
            return Result.failed(e)

        self.session.set_current_user_and_site(sign_in)
        self.client.token_provider.set_refresh(self._refresh_token)
        return Result.succeeded(
            SitesApiClient(self.client, self.config_reader, self.file_store)
        )

    async def _request_sign_in(self) -> SignInInfo:
        response = await self.client.post(
            'auth/signin',
            json={
                'credentials': {
                    'personalAccessTokenName': self.connection.access_token_name,
                    'personalAccessTokenSecret': self.connection.access_token,
                    'site': {'contentUrl': self.connection.site_content_url},
                }
            },
            site_scoped=False,
            requires_auth=False,
        )
        credentials = (response.data or {}).get('credentials')
        if not credentials:
            raise TableauAuthenticationError(
                'Sign-in response carried no credentials',
                status_code=response.status_code,
            )

        return SignInInfo(
            token=credentials['token'],
            site_id=credentials['site']['id'],
            site_content_url=credentials['site'].get('contentUrl', ''),
            user_id=credentials['user']['id'],
        )

    async def _refresh_token(self) -> str:
        sign_in = await self._request_sign_in()
        self.session.set_current_user_and_site(sign_in)
        return sign_in.token


class SitesApiClient:
    """API clients of the signed-in site, keyed by content type.

    Signs out when used as an async context manager.
    """

    def __init__(
        self,
        client: TableauClient,
        config_reader: ConfigReader,
        file_store: ContentFileStore,
    ):
        config = config_reader.get()
        self.client = client
        self.session = client.session
        self.finder = ContentReferenceFinder(client, config.migration.page_size)

        self.users = UsersApiClient(client, self.finder)
        self.groups = GroupsApiClient(client, self.finder, config.migration.page_size)
        self.projects = ProjectsApiClient(client, self.finder)
        self.data_sources = DataSourcesApiClient(
            client,
            self.finder,
            file_store,
            config.files.chunk_size,
            config.migration.include_extracts,
        )
        self.workbooks = WorkbooksApiClient(
            client,
            self.finder,
            file_store,
            config.files.chunk_size,
            config.migration.include_extracts,
        )
        self.views = self.workbooks.views

        self._clients: Dict[ContentType, ContentApiClient] = {
            ContentType.USER: self.users,
            ContentType.GROUP: self.groups,
            ContentType.PROJECT: self.projects,
            ContentType.DATA_SOURCE: self.data_sources,
            ContentType.WORKBOOK: self.workbooks,
            ContentType.VIEW: self.views,
        }
        self.logger = logger.bind(component='SitesApiClient')

    def get_client(self, content_type: ContentType) -> ContentApiClient:
        """Return the client registered for a content type.

        Raises:
            ContentTypeNotRegisteredError: If no client handles the type
        """
        try:
            return self._clients[content_type]
        except KeyError:
            raise ContentTypeNotRegisteredError(
                f'No API client registered for content type {content_type!r}'
            ) from None

    async def sign_out(self) -> Result:
        """Sign out of the site. Session state is cleared even if the request fails."""
        if not self.session.is_signed_in:
            return Result.succeeded()

        try:
            await self.client.post('auth/signout', site_scoped=False)
        except CLIENT_ERRORS as e:
            return Result.failed(e)
        finally:
            self.session.clear_current_user_and_site()
        return Result.succeeded()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        result = await self.sign_out()
        if not result:
            self.logger.warning(f'Sign-out failed: {result.error}')
