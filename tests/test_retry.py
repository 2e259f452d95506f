"""Tests for the retry policy around chain reads."""

import pytest

from chain import ChainRPCError, NodeConnectionError
from sync import RetryPolicy

class FlakyRead:
    """Blocking read failing with a transport error a number of times."""

    def __init__(self, failures, result='ok'):
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        if self.calls <= self.failures:
            raise NodeConnectionError("connection refused")
        return (self.result, args)

@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    read = FlakyRead(failures=2)

    result = await RetryPolicy(interval=0, max_tries=5).call(read, 1, 2)

    assert result == ('ok', (1, 2))
    assert read.calls == 3

@pytest.mark.asyncio
async def test_gives_up_after_max_tries():
    read = FlakyRead(failures=10)

    with pytest.raises(NodeConnectionError):
        await RetryPolicy(interval=0, max_tries=3).call(read)

    assert read.calls == 3

@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    def read():
        calls.append(1)
        raise ChainRPCError("no such app", -1, 'getapplication')

    with pytest.raises(ChainRPCError):
        await RetryPolicy(interval=0, max_tries=5).call(read)

    assert len(calls) == 1

def test_from_settings_maps_zero_to_unbounded():
    policy = RetryPolicy.from_settings({'retry_interval': 1.5, 'retry_max_tries': 0})
    assert policy.max_tries is None
    assert policy.wait_kwargs == {'interval': 1.5}

    assert RetryPolicy.from_settings({'retry_interval': 1, 'retry_max_tries': 4}).max_tries == 4
