"""Tests for CancellationToken."""

import asyncio

import pytest

from notegen.cancellation import CancellationToken


@pytest.mark.asyncio
async def test_wait_returns_after_cancel():
    token = CancellationToken()
    waiter = asyncio.create_task(token.wait())
    await asyncio.sleep(0)

    assert not waiter.done()
    token.cancel("user closed the note")
    await asyncio.wait_for(waiter, timeout=1)

    assert token.cancelled
    assert token.reason == "user closed the note"


def test_cancel_is_idempotent():
    token = CancellationToken()
    token.cancel("first")
    token.cancel("second")

    assert token.reason == "first"
