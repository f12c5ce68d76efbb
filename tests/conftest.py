"""Shared fixtures: configuration and a scripted REST transport."""

import re
import uuid

import pytest

from tableau_migrate.api.client import TableauClient
from tableau_migrate.api.resilience import CachedRetryPolicyBuilder, RetryPolicyBuilder
from tableau_migrate.api.session import ServerVersion, SignInInfo
from tableau_migrate.api.transport import RestResponse
from tableau_migrate.config.config import Config, ConfigReader

SITE_ID = uuid.UUID('11111111-1111-1111-1111-111111111111')
USER_ID = uuid.UUID('22222222-2222-2222-2222-222222222222')


class FakeTransport:
    """Answers requests from routes registered per method and path pattern.

    A route holds a list of responses served in order (the last one repeats)
    or a callable receiving the request.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def add(self, method, pattern, *responses, handler=None):
        self.routes.append(
            {'method': method, 'pattern': re.compile(pattern + r'(\?.*)?$'), 'responses': list(responses), 'handler': handler}
        )
        return self

    def calls(self, method=None, pattern=None):
        regex = re.compile(pattern + r'$') if pattern else None
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and (regex is None or regex.search(r.url))
        ]

    async def __call__(self, request):
        self.requests.append(request.copy(deep=True))
        for route in self.routes:
            if route['method'] != request.method or not route['pattern'].search(request.url):
                continue
            if route['handler'] is not None:
                result = route['handler'](request)
                if hasattr(result, '__await__'):
                    result = await result
                return _as_response(result)
            responses = route['responses']
            response = responses.pop(0) if len(responses) > 1 else responses[0]
            if isinstance(response, Exception):
                raise response
            return _as_response(response)
        return RestResponse(status_code=404, data={'error': {'summary': 'Not Found', 'code': '404000'}})


def _as_response(value):
    if isinstance(value, RestResponse):
        return value
    if isinstance(value, tuple):
        status, data = value
        return RestResponse(status_code=status, data=data)
    return RestResponse(status_code=200, data=value)


async def no_sleep(delay):
    return None


def make_config(**overrides):
    data = {
        'source': {
            'server_url': 'https://source.example.com',
            'site_content_url': 'source',
            'access_token_name': 'source-token',
            'access_token': 'source-secret',
        },
        'destination': {
            'server_url': 'https://dest.example.com',
            'site_content_url': 'dest',
            'access_token_name': 'dest-token',
            'access_token': 'dest-secret',
        },
        'resilience': {'retry_enabled': False},
    }
    data.update(overrides)
    return Config(**data)


def make_client(transport, config=None, signed_in=True, connection='source', with_version=True):
    config = config or make_config()
    reader = ConfigReader(config)
    client = TableauClient(
        getattr(config, connection),
        reader,
        transport=transport,
        policy_builder=CachedRetryPolicyBuilder(RetryPolicyBuilder(sleep=no_sleep), reader),
    )
    if with_version:
        client.session.set_version(ServerVersion(product_version='2023.1.0', rest_api_version='3.19'))
    if signed_in:
        client.session.set_current_user_and_site(
            SignInInfo(token='token-1', site_id=SITE_ID, user_id=USER_ID)
        )
    return client


def page(plural, singular, items, total=None):
    """REST list response body."""
    return {
        'pagination': {'totalAvailable': str(len(items) if total is None else total)},
        plural: {singular: items},
    }


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport, config):
    return make_client(transport, config)
