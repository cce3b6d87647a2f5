import asyncio
from unittest.mock import Mock, patch

import httpx
import pytest

from vafast_client.middlewares.cache import ResponseCache, cache_middleware, canonical_cache_key
from vafast_client.middlewares.logger import logger_middleware
from vafast_client.middlewares.timeout import timeout_middleware
from vafast_client.pipeline.compose import compose
from vafast_client.pipeline.context_builder import RequestContextBuilder
from vafast_client.pipeline.models import ApiError, ErrorKind, RequestConfig, ResponseContext


@pytest.fixture
def builder():
    return RequestContextBuilder('http://api.test')


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLoggerMiddleware:
    @pytest.mark.asyncio
    async def test_logs_request_and_response(self, builder):
        ctx = builder.build('GET', '/users')
        on_request = Mock()
        on_response = Mock()

        async def terminal():
            return ResponseContext(request=ctx, data=[], status=200)

        with patch('vafast_client.middlewares.logger.logger') as mock_logger:
            response = await compose([logger_middleware(on_request=on_request, on_response=on_response)])(ctx, terminal)

        assert response.status == 200
        on_request.assert_called_once_with(ctx)
        on_response.assert_called_once_with(response)
        messages = [call.args[0] for call in mock_logger.info.call_args_list]
        assert messages[0] == '[API] -> GET /users'
        assert messages[1].startswith('[API] <- 200 /users (')

    @pytest.mark.asyncio
    async def test_logs_error_code(self, builder):
        ctx = builder.build('GET', '/missing')

        async def terminal():
            return ResponseContext(request=ctx, error=ApiError(code=404, message='HTTP 404', kind=ErrorKind.SERVER), status=404)

        with patch('vafast_client.middlewares.logger.logger') as mock_logger:
            await compose([logger_middleware(prefix='[X]')])(ctx, terminal)

        assert mock_logger.info.call_args_list[1].args[0].startswith('[X] <- ERR 404 /missing')

    @pytest.mark.asyncio
    async def test_disabled_still_runs_hooks(self, builder):
        ctx = builder.build('GET', '/users')
        on_request = Mock()

        async def terminal():
            return ResponseContext(request=ctx, status=200)

        with patch('vafast_client.middlewares.logger.logger') as mock_logger:
            await compose([logger_middleware(on_request=on_request, enabled=False)])(ctx, terminal)

        mock_logger.info.assert_not_called()
        on_request.assert_called_once()

    def test_named(self):
        assert logger_middleware().middleware_name == 'logger'


class TestTimeoutMiddleware:
    @pytest.mark.asyncio
    async def test_expiry_becomes_timeout_error(self, builder):
        ctx = builder.build('GET', '/slow')

        async def terminal():
            await asyncio.sleep(1)
            return ResponseContext(request=ctx, status=200)

        response = await compose([timeout_middleware(0.01)])(ctx, terminal)

        assert response.status == 408
        assert response.error.kind == ErrorKind.TIMEOUT
        assert response.error.code == 408

    @pytest.mark.asyncio
    async def test_per_call_timeout_takes_precedence(self, builder):
        ctx = builder.build('GET', '/slow', config=RequestConfig(timeout=5.0))

        async def terminal():
            await asyncio.sleep(0.02)
            return ResponseContext(request=ctx, data='done', status=200)

        response = await compose([timeout_middleware(0.001)])(ctx, terminal)

        assert response.data == 'done'


class TestResponseCache:
    def test_ttl_expiry(self, builder):
        clock = FakeClock()
        cache = ResponseCache(ttl=10, clock=clock)
        response = ResponseContext(request=builder.build('GET', '/x'), data=1, status=200)
        cache.set('k', response)

        clock.now = 9.9
        assert cache.get('k') is response
        clock.now = 10.0
        assert cache.get('k') is None
        assert len(cache) == 0

    def test_oldest_evicted(self, builder):
        cache = ResponseCache(max_size=2)
        ctx = builder.build('GET', '/x')
        for key in ('a', 'b', 'c'):
            cache.set(key, ResponseContext(request=ctx, data=key, status=200))

        assert cache.get('a') is None
        assert cache.get('b').data == 'b'
        assert len(cache) == 2

    def test_key_is_canonical(self, builder):
        first = canonical_cache_key(builder.build('GET', 'users', {'b': 2, 'a': 1}))
        second = canonical_cache_key(builder.build('get', '/users', {'a': 1, 'b': 2}))
        other_base = canonical_cache_key(RequestContextBuilder('http://other.test').build('GET', '/users', {'a': 1, 'b': 2}))

        assert first == second
        assert first != other_base

    def test_key_includes_body_hash(self, builder):
        one = canonical_cache_key(builder.build('POST', '/search', {'q': 'a'}))
        two = canonical_cache_key(builder.build('POST', '/search', {'q': 'b'}))
        assert one != two


class TestCacheMiddleware:
    @pytest.mark.asyncio
    async def test_hit_short_circuits(self, builder):
        calls = []
        middleware = cache_middleware(ttl=60)
        dispatch = compose([middleware])

        async def run():
            ctx = builder.build('GET', '/users', {'page': 1})

            async def terminal():
                calls.append(1)
                return ResponseContext(request=ctx, raw=httpx.Response(200), data={'users': ['a']}, status=200)

            return ctx, await dispatch(ctx, terminal)

        _, first = await run()
        ctx, second = await run()

        assert calls == [1]
        assert second.data == {'users': ['a']}
        assert second.request is ctx
        assert ctx.meta['cache_hit'] is True
        second.data['users'].append('mutated')
        assert middleware.cache.get(canonical_cache_key(ctx)).data == {'users': ['a']}

    @pytest.mark.asyncio
    async def test_errors_not_cached(self, builder):
        calls = []
        dispatch = compose([cache_middleware()])

        for _ in range(2):
            ctx = builder.build('GET', '/flaky')

            async def terminal(ctx=ctx):
                calls.append(1)
                return ResponseContext(request=ctx, error=ApiError(code=503, message='HTTP 503', kind=ErrorKind.SERVER), status=503)

            await dispatch(ctx, terminal)

        assert calls == [1, 1]

    @pytest.mark.asyncio
    async def test_uncached_methods_pass_through(self, builder):
        calls = []
        middleware = cache_middleware()
        dispatch = compose([middleware])

        for _ in range(2):
            ctx = builder.build('POST', '/items', {'a': 1})

            async def terminal(ctx=ctx):
                calls.append(1)
                return ResponseContext(request=ctx, data={}, status=201)

            await dispatch(ctx, terminal)

        assert calls == [1, 1]
        assert len(middleware.cache) == 0

    def test_instances_do_not_share_store(self):
        assert cache_middleware().cache is not cache_middleware().cache
