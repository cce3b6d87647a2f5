import asyncio

import httpx
import pytest

from vafast_client.config.models import RetrySettings
from vafast_client.pipeline.cancellation import CancellationToken
from vafast_client.pipeline.context_builder import RequestContextBuilder
from vafast_client.pipeline.http_client import HttpClientService
from vafast_client.pipeline.models import ApiError, ErrorKind, RequestConfig, ResponseContext
from vafast_client.pipeline.retry import RetryPolicy, send_with_retry


@pytest.fixture
def ctx():
    return RequestContextBuilder('http://api.test').build('GET', '/flaky')


def server_error(ctx, status):
    return ResponseContext(request=ctx, error=ApiError(code=status, message=f'HTTP {status}', kind=ErrorKind.SERVER), status=status)


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestRetryPolicy:
    def test_from_settings(self):
        policy = RetryPolicy.from_settings(RetrySettings(count=2, delay=0.5, backoff=False, on=(503,)))
        assert (policy.count, policy.delay, policy.backoff, policy.on) == (2, 0.5, False, (503,))

    @pytest.mark.parametrize('backoff,expected', [(True, [1.0, 2.0, 4.0]), (False, [1.0, 1.0, 1.0])])
    def test_delay_for(self, backoff, expected):
        policy = RetryPolicy(delay=1.0, backoff=backoff)
        assert [policy.delay_for(attempt) for attempt in range(3)] == expected

    def test_wants_retry(self, ctx):
        policy = RetryPolicy()

        assert policy.wants_retry(server_error(ctx, 503))
        assert not policy.wants_retry(server_error(ctx, 404))
        assert not policy.wants_retry(ResponseContext(request=ctx, data={}, status=200))
        assert policy.wants_retry(ResponseContext(request=ctx, error=ApiError(code=0, message='down', kind=ErrorKind.NETWORK)))
        assert not policy.wants_retry(ResponseContext(request=ctx, error=ApiError(code=408, message='Request timed out', kind=ErrorKind.TIMEOUT), status=408))
        assert not policy.wants_retry(ResponseContext(request=ctx, error=ApiError(code=0, message='Request aborted', kind=ErrorKind.ABORT)))

    def test_custom_predicate(self, ctx):
        policy = RetryPolicy(should_retry=lambda response: response.status == 404)
        assert policy.wants_retry(server_error(ctx, 404))
        assert not policy.wants_retry(server_error(ctx, 503))


class TestSendWithRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self, ctx):
        outcomes = [server_error(ctx, 503), server_error(ctx, 502), ResponseContext(request=ctx, data='ok', status=200)]
        sleep = FakeSleep()

        async def send():
            return outcomes.pop(0)

        with ctx.controller:
            response = await send_with_retry(send, ctx, RetryPolicy(count=3, delay=0.5), sleep=sleep)

        assert response.data == 'ok'
        assert ctx.retry_count == 2
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_count(self, ctx):
        calls = []

        async def send():
            calls.append(1)
            return server_error(ctx, 500)

        with ctx.controller:
            response = await send_with_retry(send, ctx, RetryPolicy(count=2, delay=0), sleep=FakeSleep())

        assert response.status == 500
        assert len(calls) == 3
        assert ctx.retry_count == 2

    @pytest.mark.asyncio
    async def test_deadline_during_wait_reports_timeout(self):
        ctx = RequestContextBuilder('http://api.test', default_timeout=0.05).build('GET', '/flaky')
        calls = []

        async def send():
            calls.append(1)
            return server_error(ctx, 503)

        with ctx.controller:
            response = await send_with_retry(send, ctx, RetryPolicy(count=5, delay=10))

        assert response.error.kind == ErrorKind.TIMEOUT
        assert response.error.code == 408
        assert response.raw is None
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_cancel_during_wait_reports_abort(self):
        token = CancellationToken()
        ctx = RequestContextBuilder('http://api.test').build('GET', '/flaky', config=RequestConfig(signal=token))
        calls = []

        async def send():
            calls.append(1)
            return server_error(ctx, 503)

        async def sleep(delay):
            token.cancel()
            await asyncio.sleep(10)

        with ctx.controller:
            response = await send_with_retry(send, ctx, RetryPolicy(count=5, delay=10), sleep=sleep)

        assert response.error.kind == ErrorKind.ABORT
        assert response.error.message == 'Request aborted'
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_end_to_end_with_transport(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) < 2:
                return httpx.Response(503, json={})
            return httpx.Response(200, json={'ok': True})

        service = HttpClientService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        ctx = RequestContextBuilder('http://api.test').build('GET', '/flaky')

        with ctx.controller:
            response = await send_with_retry(lambda: service.send(ctx), ctx, RetryPolicy(delay=0), sleep=FakeSleep())

        assert response.data == {'ok': True}
        assert len(attempts) == 2
