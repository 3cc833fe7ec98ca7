from __future__ import annotations

import asyncio

import pytest

from tinyproc.process.cancel import CancelledByCaller, CancelToken


def test_cancel_runs_callbacks_once_with_reason() -> None:
    token = CancelToken()
    seen: list[BaseException] = []
    token.add_callback(seen.append)

    reason = RuntimeError("stop")
    token.cancel(reason)
    token.cancel(RuntimeError("again"))

    assert token.cancelled
    assert token.reason is reason
    assert seen == [reason]


def test_cancel_without_reason_uses_default() -> None:
    token = CancelToken()
    token.cancel()

    assert isinstance(token.reason, CancelledByCaller)


def test_add_callback_on_cancelled_token_runs_immediately() -> None:
    token = CancelToken()
    token.cancel()
    seen: list[BaseException] = []

    token.add_callback(seen.append)

    assert seen == [token.reason]


def test_removed_callback_is_not_called() -> None:
    token = CancelToken()
    seen: list[BaseException] = []
    remove = token.add_callback(seen.append)

    remove()
    token.cancel()

    assert seen == []


def test_any_propagates_already_cancelled_reason() -> None:
    first, second = CancelToken(), CancelToken()
    reason = RuntimeError("early")
    second.cancel(reason)

    combined = CancelToken.any([first, None, second])

    assert combined.cancelled
    assert combined.reason is reason


def test_any_is_first_wins() -> None:
    first, second = CancelToken(), CancelToken()
    combined = CancelToken.any([first, second])
    assert not combined.cancelled

    reason = RuntimeError("second")
    second.cancel(reason)
    first.cancel(RuntimeError("first"))

    assert combined.reason is reason


def test_closed_any_detaches_from_sources() -> None:
    source = CancelToken()
    combined = CancelToken.any([source])

    combined.close()
    source.cancel()

    assert not combined.cancelled


@pytest.mark.anyio
async def test_after_cancels_with_timeout_error() -> None:
    token = CancelToken.after(0.01)
    await asyncio.sleep(0.05)

    assert token.cancelled
    assert isinstance(token.reason, TimeoutError)


@pytest.mark.anyio
async def test_closed_timer_never_fires() -> None:
    token = CancelToken.after(0.01)
    token.close()
    await asyncio.sleep(0.05)

    assert not token.cancelled
