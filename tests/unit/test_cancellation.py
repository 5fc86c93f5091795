"""Tests for cancellation tokens and task control."""

import asyncio

import pytest

from workflowAgent.core.cancellation import DEFAULT_REASON, CancellationToken, gather_or_cancel
from workflowAgent.utils.error_handler import TaskAbortedError
from fakes import make_task_context


class TestCancellationToken:
    def test_cancel_once(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_default_reason(self):
        token = CancellationToken()
        token.cancel()
        assert token.reason == DEFAULT_REASON

    def test_children_follow_parent(self):
        parent = CancellationToken()
        child = parent.child()
        grandchild = child.child()

        parent.cancel("stop")

        assert child.reason == "stop"
        assert grandchild.reason == "stop"

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        parent.cancel("gone")
        assert parent.child().cancelled

    def test_child_cancel_does_not_reach_parent(self):
        parent = CancellationToken()
        parent.child().cancel("local")
        assert not parent.cancelled

    def test_detached_child_is_independent(self):
        parent = CancellationToken()
        child = parent.child()
        child.detach()
        parent.cancel("stop")
        assert not child.cancelled

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("halt")
        with pytest.raises(TaskAbortedError, match="halt"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        async def work():
            return 42

        assert await CancellationToken().guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_gives_up_on_cancel(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def forever():
            started.set()
            await asyncio.sleep(60)

        async def cancel_soon():
            await started.wait()
            token.cancel("user stop")

        canceller = asyncio.ensure_future(cancel_soon())
        with pytest.raises(TaskAbortedError, match="user stop"):
            await token.guard(forever())
        await canceller


class TestTaskControl:
    @pytest.mark.asyncio
    async def test_abort(self):
        context = make_task_context()
        await context.check_aborted()
        context.abort("enough")
        assert context.aborted
        with pytest.raises(TaskAbortedError):
            await context.check_aborted()

    @pytest.mark.asyncio
    async def test_pause_blocks_until_resumed(self):
        context = make_task_context()
        context.set_pause(True)
        waiter = asyncio.ensure_future(context.check_aborted())
        await asyncio.sleep(0)
        assert not waiter.done()

        context.set_pause(False)
        await asyncio.wait_for(waiter, 1)

    @pytest.mark.asyncio
    async def test_abort_releases_paused_task(self):
        context = make_task_context()
        context.set_pause(True)
        waiter = asyncio.ensure_future(context.check_aborted())
        await asyncio.sleep(0)

        context.abort("stop")

        with pytest.raises(TaskAbortedError):
            await asyncio.wait_for(waiter, 1)

    def test_step_token_is_released(self):
        context = make_task_context()
        with context.step() as token:
            assert not token.cancelled
        context.abort("later")
        assert not token.cancelled

    def test_step_token_follows_task(self):
        context = make_task_context()
        with context.step() as token:
            context.abort("now")
            assert token.reason == "now"

    def test_interventions_drained_once(self):
        context = make_task_context()
        context.intervene("first")
        context.intervene("")
        context.intervene("second")
        assert context.drain_conversation() == ["first", "second"]
        assert context.drain_conversation() == []


class TestGatherOrCancel:
    @pytest.mark.asyncio
    async def test_results_keep_argument_order(self):
        async def value(delay, result):
            await asyncio.sleep(delay)
            return result

        assert await gather_or_cancel(value(0.05, "a"), value(0, "b")) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.2)
            finished.append("slow")

        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await gather_or_cancel(slow(), broken())
        await asyncio.sleep(0.3)

        assert finished == []
