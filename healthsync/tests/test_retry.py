import asyncio
from itertools import islice

import pytest

from healthsync.client.checksum import digest, safe_digest
from healthsync.client.retry import CancellationToken, RetryPolicy
from healthsync.core.exceptions import ErrorCode, TransferCancelled


def test_chunk_backoff_doubles_and_caps():
	policy = RetryPolicy.for_chunks()

	assert [policy.backoff(attempt) for attempt in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_chunk_policy_rejects_auth_and_size_errors():
	policy = RetryPolicy.for_chunks()

	for status in (413, 401, 403):
		assert not policy.is_retryable(status)
	for status in (None, 400, 404, 429, 500, 502, 503):
		assert policy.is_retryable(status)


def test_polling_delays_grow_by_half_and_cap():
	policy = RetryPolicy.for_polling()
	delays = list(islice(policy.delays(), 12))

	assert delays[:5] == [2.0, 3.0, 4.5, 6.75, 10.125]
	assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
	assert max(delays) == 30.0
	assert delays[-1] == 30.0
	assert policy.max_attempts == 60


def test_checksum_is_hex_sha256():
	assert digest(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
	assert safe_digest(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
	assert safe_digest(None) is None


async def test_token_run_returns_result():
	token = CancellationToken()

	async def work():
		await asyncio.sleep(0)
		return 42

	assert await token.run(work()) == 42


async def test_token_run_aborts_in_flight_work():
	token = CancellationToken()
	finished = []

	async def slow():
		await asyncio.sleep(10)
		finished.append(True)

	asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

	with pytest.raises(TransferCancelled) as exc_info:
		await asyncio.wait_for(token.run(slow()), timeout=2)

	assert exc_info.value.code == ErrorCode.CANCELLED
	assert exc_info.value.message == "stop"
	assert finished == []


async def test_token_cancelled_before_run_never_starts_work():
	token = CancellationToken()
	token.cancel()
	started = []

	async def work():
		started.append(True)

	with pytest.raises(TransferCancelled):
		await token.run(work())
	assert started == []
	with pytest.raises(TransferCancelled):
		token.raise_if_cancelled(chunk_number=1)


def test_chunk_policy_counts_first_try_as_an_attempt():
	policy = RetryPolicy.for_chunks(max_retries=3)

	assert policy.max_attempts == 4
	assert policy.max_retries == 3
	assert RetryPolicy.for_chunks(max_retries=0).max_attempts == 1
