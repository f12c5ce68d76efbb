"""Tests for the Tableau REST client and site sign-in."""

import uuid
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from tableau_migrate.api.api_client import ApiClient, SitesApiClient
from tableau_migrate.api.exceptions import (
    ContentTypeNotRegisteredError,
    TableauAPIError,
    TableauAuthenticationError,
    TableauConflictError,
    TableauNotFoundError,
    TableauPermissionError,
    TableauRateLimitError,
)
from tableau_migrate.api.transport import RestResponse
from tableau_migrate.config.config import ConfigReader
from tableau_migrate.files.store import TemporaryContentFileStore
from tableau_migrate.models.content import ContentType

from conftest import SITE_ID, FakeTransport, make_client, make_config

SIGNED_IN_SITE = '33333333-3333-3333-3333-333333333333'
SIGNED_IN_USER = '44444444-4444-4444-4444-444444444444'

SERVER_INFO = {
    'serverInfo': {
        'productVersion': {'value': '2023.3.0', 'build': '20233.23.1017.0948'},
        'restApiVersion': '3.21',
    }
}


def sign_in_body(token='session-token'):
    return {
        'credentials': {
            'token': token,
            'site': {'id': SIGNED_IN_SITE, 'contentUrl': 'source'},
            'user': {'id': SIGNED_IN_USER},
        }
    }


class TestTableauClient:
    """Test REST client URL building and error mapping."""

    def test_build_url_site_scoped(self, client):
        assert (
            client.build_url('projects')
            == f'https://source.example.com/api/3.19/sites/{SITE_ID}/projects'
        )

    def test_build_url_not_site_scoped(self, client):
        assert (
            client.build_url('/auth/signin/', site_scoped=False)
            == 'https://source.example.com/api/3.19/auth/signin'
        )
        assert (
            client.build_url('serverinfo', site_scoped=False, api_version='2.4')
            == 'https://source.example.com/api/2.4/serverinfo'
        )

    def test_build_url_requires_sign_in(self, transport):
        client = make_client(transport, signed_in=False)

        with pytest.raises(TableauAuthenticationError):
            client.build_url('projects')

    async def test_get_success_attaches_token(self, client, transport):
        transport.add('GET', r'/projects', {'projects': {'project': []}})

        response = await client.get('projects', params={'pageSize': 10, 'skip': None})

        assert response.data == {'projects': {'project': []}}
        sent = transport.requests[0]
        assert sent.headers['X-Tableau-Auth'] == 'token-1'
        assert sent.params == {'pageSize': '10'}

    @pytest.mark.parametrize(
        'status, error_type',
        [
            (403, TableauPermissionError),
            (404, TableauNotFoundError),
            (409, TableauConflictError),
            (400, TableauAPIError),
        ],
    )
    async def test_error_status_mapping(self, transport, status, error_type):
        transport.add(
            'GET',
            r'/projects',
            (status, {'error': {'summary': 'Bad', 'detail': 'details', 'code': f'{status}001'}}),
        )
        client = make_client(transport)

        with pytest.raises(error_type) as exc_info:
            await client.get('projects')

        assert exc_info.value.status_code == status
        assert exc_info.value.error_code == f'{status}001'
        assert 'Bad: details' in str(exc_info.value)

    async def test_401_without_refresh_raises(self, client, transport):
        transport.add('GET', r'/projects', (401, None))

        with pytest.raises(TableauAuthenticationError):
            await client.get('projects')

    async def test_rate_limit_error(self, client, transport):
        transport.add(
            'GET', r'/projects', RestResponse(status_code=429, headers={'Retry-After': '7'})
        )

        with pytest.raises(TableauRateLimitError) as exc_info:
            await client.get('projects')

        assert exc_info.value.retry_after == 7

    async def test_rate_limit_reads_lowercase_header(self, client, transport):
        transport.add(
            'GET', r'/projects', RestResponse(status_code=429, headers={'retry-after': '9'})
        )

        with pytest.raises(TableauRateLimitError) as exc_info:
            await client.get('projects')

        assert exc_info.value.retry_after == 9

    async def test_rate_limit_http_date_header(self, client, transport):
        retry_at = datetime.now(timezone.utc) + timedelta(seconds=120)
        transport.add(
            'GET',
            r'/projects',
            RestResponse(
                status_code=429,
                headers={'Retry-After': format_datetime(retry_at, usegmt=True)},
            ),
        )

        with pytest.raises(TableauRateLimitError) as exc_info:
            await client.get('projects')

        assert 100 <= exc_info.value.retry_after <= 121

    async def test_rate_limit_unreadable_header_uses_default(self, client, transport):
        transport.add(
            'GET', r'/projects', RestResponse(status_code=429, headers={'Retry-After': 'soon'})
        )

        with pytest.raises(TableauRateLimitError) as exc_info:
            await client.get('projects')

        assert exc_info.value.retry_after == 60


class TestApiClientSignIn:
    """Test the sign-in state machine."""

    def setup_method(self):
        self.config = make_config()
        self.transport = FakeTransport()
        self.reader = ConfigReader(self.config)
        self.store = TemporaryContentFileStore()
        client = make_client(self.transport, self.config, signed_in=False, with_version=False)
        self.api = ApiClient(self.config.source, self.reader, self.store, client=client)

    def teardown_method(self):
        self.store.close()

    async def test_sign_in_reads_version_and_sets_session(self):
        self.transport.add('GET', r'/2\.4/serverinfo', SERVER_INFO)
        self.transport.add('POST', r'/auth/signin', sign_in_body())

        result = await self.api.sign_in()

        assert result.success
        assert isinstance(result.value, SitesApiClient)
        session = self.api.session
        assert session.version.rest_api_version == '3.21'
        assert session.is_signed_in
        assert session.token == 'session-token'
        assert str(session.site_id) == SIGNED_IN_SITE

        signin = self.transport.calls('POST', r'/3\.21/auth/signin')[0]
        credentials = signin.json_body['credentials']
        assert credentials['personalAccessTokenName'] == 'source-token'
        assert credentials['site'] == {'contentUrl': 'source'}
        assert 'X-Tableau-Auth' not in signin.headers

    async def test_cached_version_skips_server_info(self):
        self.transport.add('GET', r'/serverinfo', SERVER_INFO)
        self.transport.add('POST', r'/auth/signin', sign_in_body())

        await self.api.sign_in()
        self.api.session.clear_current_user_and_site()
        await self.api.sign_in()

        assert len(self.transport.calls('GET', r'/serverinfo')) == 1

    async def test_server_info_failure_leaves_session_unset(self):
        self.transport.add('GET', r'/serverinfo', (500, None))

        result = await self.api.sign_in()

        assert not result.success
        assert self.api.session.version is None
        assert not self.api.session.is_signed_in
        assert self.transport.calls('POST') == []

    async def test_rejected_sign_in_fails(self):
        self.transport.add('GET', r'/serverinfo', SERVER_INFO)
        self.transport.add(
            'POST', r'/auth/signin', (401, {'error': {'summary': 'Signin Error', 'code': '401001'}})
        )

        result = await self.api.sign_in()

        assert not result.success
        assert isinstance(result.error, TableauAuthenticationError)
        assert not self.api.session.is_signed_in

    async def test_expired_token_signs_in_again(self):
        self.transport.add('GET', r'/serverinfo', SERVER_INFO)
        self.transport.add('POST', r'/auth/signin', sign_in_body('first'), sign_in_body('second'))

        def projects(request):
            if request.headers.get('X-Tableau-Auth') == 'first':
                return 401, None
            return {'projects': {'project': []}}

        self.transport.add('GET', r'/projects', handler=projects)

        site = (await self.api.sign_in()).value
        response = await site.client.get('projects')

        assert response.status_code == 200
        assert self.api.session.token == 'second'
        assert len(self.transport.calls('POST', r'/auth/signin')) == 2


class TestSitesApiClient:
    """Test the per-site client registry and sign-out."""

    def setup_method(self):
        self.config = make_config()
        self.transport = FakeTransport()
        self.store = TemporaryContentFileStore()
        self.client = make_client(self.transport, self.config)
        self.site = SitesApiClient(self.client, ConfigReader(self.config), self.store)

    def teardown_method(self):
        self.store.close()

    def test_get_client(self):
        assert self.site.get_client(ContentType.PROJECT) is self.site.projects
        assert self.site.get_client(ContentType.WORKBOOK) is self.site.workbooks
        assert self.site.get_client(ContentType.VIEW) is self.site.views

    def test_get_client_unknown_type(self):
        with pytest.raises(ContentTypeNotRegisteredError):
            self.site.get_client('flows')

    async def test_sign_out_clears_session(self):
        self.transport.add('POST', r'/auth/signout', (204, None))

        result = await self.site.sign_out()

        assert result.success
        assert not self.client.session.is_signed_in
        assert self.client.session.token is None

    async def test_sign_out_failure_still_clears_session(self):
        self.transport.add('POST', r'/auth/signout', (500, None))

        result = await self.site.sign_out()

        assert not result.success
        assert not self.client.session.is_signed_in

    async def test_sign_out_when_signed_out_is_noop(self):
        self.client.session.clear_current_user_and_site()

        result = await self.site.sign_out()

        assert result.success
        assert self.transport.requests == []

    async def test_context_manager_signs_out(self):
        self.transport.add('POST', r'/auth/signout', (204, None))

        async with self.site:
            assert self.client.session.is_signed_in

        assert not self.client.session.is_signed_in
        assert len(self.transport.calls('POST', r'/auth/signout')) == 1

    async def test_finder_resolves_project_paths(self):
        parent, child = str(uuid.uuid4()), str(uuid.uuid4())
        self.transport.add(
            'GET',
            r'/projects',
            {
                'pagination': {'totalAvailable': '2'},
                'projects': {
                    'project': [
                        {'id': child, 'name': 'Child', 'parentProjectId': parent},
                        {'id': parent, 'name': 'Parent'},
                    ]
                },
            },
        )

        reference = await self.site.finder.find_project(uuid.UUID(child))

        assert reference.location.path == 'Parent/Child'
        assert await self.site.finder.find_project(uuid.uuid4()) is None
        assert len(self.transport.calls('GET', r'/projects')) == 1
