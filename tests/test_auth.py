"""Tests for session token refresh and the authentication handler."""

import asyncio

import pytest

from tableau_migrate.api.auth import (
    AUTH_HEADER,
    AuthenticationHandler,
    AuthenticationTokenProvider,
)
from tableau_migrate.api.exceptions import TableauAuthenticationError
from tableau_migrate.api.session import ServerSessionProvider
from tableau_migrate.api.transport import RestRequest, RestResponse


def make_provider(refresh=None, token='stale'):
    session = ServerSessionProvider()
    session.set_token(token)
    return AuthenticationTokenProvider(session, refresh)


def request(requires_auth=True):
    return RestRequest(
        method='GET',
        url='https://tableau.example.com/api/3.19/sites/x/projects',
        requires_auth=requires_auth,
    )


class TestAuthenticationTokenProvider:
    """Test single-flight token refresh."""

    async def test_concurrent_refreshes_share_one_sign_in(self):
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def refresh():
            calls.append(1)
            started.set()
            await release.wait()
            return 'fresh'

        provider = make_provider(refresh)

        waiters = [
            asyncio.ensure_future(provider.request_refresh('stale')) for _ in range(5)
        ]
        await started.wait()
        release.set()
        tokens = await asyncio.gather(*waiters)

        assert tokens == ['fresh'] * 5
        assert len(calls) == 1
        assert provider.refresh_count == 1
        assert provider.token == 'fresh'

    async def test_already_replaced_token_is_returned_without_refresh(self):
        calls = []

        async def refresh():
            calls.append(1)
            return 'other'

        provider = make_provider(refresh, token='fresh')

        token = await provider.request_refresh('stale')

        assert token == 'fresh'
        assert calls == []

    async def test_refresh_failure_is_authentication_error(self):
        async def refresh():
            raise RuntimeError('sign-in rejected')

        provider = make_provider(refresh)

        with pytest.raises(TableauAuthenticationError):
            await provider.request_refresh('stale')

        assert provider.token == 'stale'

    async def test_failed_refresh_is_reused_for_the_same_stale_token(self):
        calls = []

        async def refresh():
            calls.append(1)
            raise RuntimeError('sign-in rejected')

        provider = make_provider(refresh)

        with pytest.raises(TableauAuthenticationError) as first:
            await provider.request_refresh('stale')
        with pytest.raises(TableauAuthenticationError) as second:
            await provider.request_refresh('stale')

        assert second.value is first.value
        assert len(calls) == 1

    async def test_new_token_clears_remembered_failure(self):
        outcomes = [RuntimeError('sign-in rejected'), 'fresh']

        async def refresh():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        provider = make_provider(refresh)
        with pytest.raises(TableauAuthenticationError):
            await provider.request_refresh('stale')

        provider.session.set_token('replaced')
        token = await provider.request_refresh('replaced')

        assert token == 'fresh'
        assert provider.refresh_count == 2

    async def test_refresh_without_callback_fails(self):
        provider = make_provider()

        with pytest.raises(TableauAuthenticationError):
            await provider.request_refresh('stale')


class TestAuthenticationHandler:
    """Test token attachment and the 401 retry."""

    async def test_attaches_token(self):
        seen = []

        async def send(req):
            seen.append(req.headers.get(AUTH_HEADER))
            return RestResponse(status_code=200)

        handler = AuthenticationHandler(send, make_provider(token='abc'))
        response = await handler(request())

        assert response.status_code == 200
        assert seen == ['abc']

    async def test_unauthenticated_request_has_no_token(self):
        seen = []

        async def send(req):
            seen.append(AUTH_HEADER in req.headers)
            return RestResponse(status_code=200)

        handler = AuthenticationHandler(send, make_provider(token='abc'))
        await handler(request(requires_auth=False))

        assert seen == [False]

    async def test_401_refreshes_and_resends_once(self):
        seen = []

        async def send(req):
            seen.append(req.headers[AUTH_HEADER])
            return RestResponse(status_code=401 if len(seen) == 1 else 200)

        async def refresh():
            return 'fresh'

        handler = AuthenticationHandler(send, make_provider(refresh))
        response = await handler(request())

        assert response.status_code == 200
        assert seen == ['stale', 'fresh']

    async def test_second_401_raises(self):
        async def send(req):
            return RestResponse(status_code=401)

        async def refresh():
            return 'fresh'

        provider = make_provider(refresh)
        handler = AuthenticationHandler(send, provider)

        with pytest.raises(TableauAuthenticationError):
            await handler(request())

        assert provider.refresh_count == 1

    async def test_concurrent_401s_refresh_once(self):
        async def refresh():
            await asyncio.sleep(0)
            return 'fresh'

        provider = make_provider(refresh)

        async def send(req):
            await asyncio.sleep(0)
            if req.headers[AUTH_HEADER] == 'stale':
                return RestResponse(status_code=401)
            return RestResponse(status_code=200)

        handler = AuthenticationHandler(send, provider)
        responses = await asyncio.gather(*(handler(request()) for _ in range(10)))

        assert all(r.status_code == 200 for r in responses)
        assert provider.refresh_count == 1

    async def test_staggered_401s_all_fail_after_one_failed_refresh(self):
        calls = []

        async def refresh():
            calls.append(1)
            await asyncio.sleep(0.01)
            raise RuntimeError('sign-in rejected')

        provider = make_provider(refresh)

        async def send(req):
            await asyncio.sleep(float(req.params['delay']))
            return RestResponse(status_code=401)

        handler = AuthenticationHandler(send, provider)
        delays = [0, 0, 0.005, 0.03, 0.05, 0.08]
        requests = []
        for delay in delays:
            req = request()
            req.params['delay'] = str(delay)
            requests.append(req)

        results = await asyncio.gather(
            *(handler(req) for req in requests), return_exceptions=True
        )

        assert all(isinstance(r, TableauAuthenticationError) for r in results)
        assert len(calls) == 1
        assert provider.refresh_count == 1
        assert provider.token == 'stale'
