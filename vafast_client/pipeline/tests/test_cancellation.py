import asyncio

import pytest

from vafast_client.pipeline.cancellation import AbortReason, CancellationController, CancellationToken
from vafast_client.pipeline.exceptions import RequestAborted


class TestCancellationToken:
    def test_cancel_runs_listeners_once(self):
        token = CancellationToken()
        calls = []
        token.add_listener(lambda: calls.append('a'))

        token.cancel('user')
        token.cancel('again')

        assert token.cancelled
        assert token.reason == 'user'
        assert calls == ['a']

    def test_listener_added_after_cancel_fires_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.add_listener(lambda: calls.append(1))

        assert calls == [1]

    def test_removed_listener_not_called(self):
        token = CancellationToken()
        calls = []
        listener = lambda: calls.append(1)  # noqa: E731
        token.add_listener(listener)
        token.remove_listener(listener)
        token.remove_listener(listener)

        token.cancel()

        assert calls == []

    @pytest.mark.asyncio
    async def test_wait_unblocks_on_cancel(self):
        token = CancellationToken()
        waiter = asyncio.ensure_future(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, 1)


class TestCancellationController:
    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        async def work():
            return 42

        with CancellationController(timeout=1.0) as controller:
            assert await controller.run(work()) == 42
        assert not controller.aborted

    @pytest.mark.asyncio
    async def test_deadline_aborts_pending_work(self):
        cancelled = []

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        with CancellationController(timeout=0.01) as controller:
            with pytest.raises(RequestAborted) as exc_info:
                await controller.run(slow())

        assert exc_info.value.reason == 'timeout'
        assert controller.reason is AbortReason.TIMEOUT
        assert controller.timed_out
        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_token_cancel_classified_as_abort(self):
        token = CancellationToken()

        async def slow():
            await asyncio.sleep(10)

        with CancellationController(timeout=5.0, token=token) as controller:
            asyncio.get_running_loop().call_later(0.01, token.cancel)
            with pytest.raises(RequestAborted):
                await controller.run(slow())

        assert controller.reason is AbortReason.CANCELLED
        assert not controller.timed_out

    @pytest.mark.asyncio
    async def test_pre_cancelled_token_aborts_without_running(self):
        token = CancellationToken()
        token.cancel()
        started = []

        async def work():
            started.append(True)

        with CancellationController(token=token) as controller:
            with pytest.raises(RequestAborted):
                await controller.run(work())

        assert started == []
        assert controller.reason is AbortReason.CANCELLED

    @pytest.mark.asyncio
    async def test_disarm_detaches_from_token(self):
        token = CancellationToken()

        with CancellationController(timeout=0.01, token=token) as controller:
            pass
        token.cancel()
        await asyncio.sleep(0.02)

        assert not controller.aborted

    @pytest.mark.asyncio
    async def test_first_trigger_wins(self):
        token = CancellationToken()

        with CancellationController(timeout=0.01, token=token) as controller:
            await asyncio.sleep(0.03)
            token.cancel()

        assert controller.reason is AbortReason.TIMEOUT
        assert controller.timed_out
