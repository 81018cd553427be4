import asyncio

import httpx
import pytest

from healthsync.client.checksum import digest
from healthsync.client.models import ChunkDescriptor, ChunkState, ProgressTracker
from healthsync.client.retry import CancellationToken, RetryPolicy
from healthsync.client.transmitter import ChunkTransmitter
from healthsync.core.exceptions import ErrorCode, TransferCancelled, TransmitError
from healthsync.tests.conftest import parse_multipart, sample_bytes


def make_chunk(number=3, total=5, size=1_000):
	data = sample_bytes(size)
	return ChunkDescriptor(
		data=data,
		chunk_number=number,
		total_chunks=total,
		offset=number * size,
		size=size,
		is_last_chunk=number == total - 1,
	)


def ok_handler(requests):
	def handler(request: httpx.Request) -> httpx.Response:
		fields = parse_multipart(request)
		requests.append(fields)
		return httpx.Response(200, json={"success": True, "checksum": fields["checksum"].decode()})
	return handler


async def test_send_posts_multipart_fields(mock_api, observer, recording_sleep):
	requests = []
	chunk = make_chunk()
	transmitter = ChunkTransmitter(mock_api(ok_handler(requests), api_token="secret"), observer=observer, sleep=recording_sleep)

	ack = await transmitter.send(chunk, digest(chunk.data), "export.xml")

	assert len(requests) == 1
	fields = requests[0]
	assert fields["chunk"] == chunk.data
	assert fields["chunkNumber"] == b"3"
	assert fields["totalChunks"] == b"5"
	assert fields["isLastChunk"] == b"false"
	assert fields["fileName"] == b"export.xml"
	assert fields["checksum"] == digest(chunk.data).encode()
	assert ack.attempts == 1
	assert transmitter.states[3] is ChunkState.ACKED
	assert recording_sleep.delays == []


async def test_send_sets_bearer_token(mock_api, recording_sleep):
	seen = []

	def handler(request):
		seen.append(request.headers.get("authorization"))
		return httpx.Response(200, json={"success": True})

	await ChunkTransmitter(mock_api(handler, api_token="secret"), sleep=recording_sleep).send(make_chunk(), None, "a.xml")

	assert seen == ["Bearer secret"]


async def test_retryable_failure_exhausts_budget(mock_api, observer, recording_sleep):
	calls = []

	def handler(request):
		calls.append(request)
		return httpx.Response(500, json={"success": False, "error": "disk full"})

	policy = RetryPolicy.for_chunks(max_retries=3)
	transmitter = ChunkTransmitter(mock_api(handler), policy=policy, observer=observer, sleep=recording_sleep)

	with pytest.raises(TransmitError) as exc_info:
		await transmitter.send(make_chunk(), None, "export.xml")

	assert len(calls) == 4
	assert recording_sleep.delays == [1.0, 2.0, 4.0]
	assert exc_info.value.code == ErrorCode.UPLOAD_FAILED
	assert exc_info.value.details["chunk_number"] == 3
	assert exc_info.value.details["attempts"] == 4
	assert exc_info.value.details["status"] == 500
	assert "disk full" in exc_info.value.message
	assert transmitter.states[3] is ChunkState.FAILED
	assert [retry[1] for retry in observer.retries] == [0, 1, 2]


async def test_backoff_caps_at_ten_seconds(mock_api, recording_sleep):
	def handler(request):
		return httpx.Response(503)

	transmitter = ChunkTransmitter(mock_api(handler), policy=RetryPolicy.for_chunks(max_retries=5), sleep=recording_sleep)

	with pytest.raises(TransmitError):
		await transmitter.send(make_chunk(), None, "export.xml")

	assert recording_sleep.delays == [1.0, 2.0, 4.0, 8.0, 10.0]


@pytest.mark.parametrize(
	"status, code",
	[
		(413, ErrorCode.FILE_TOO_LARGE),
		(401, ErrorCode.UNAUTHORIZED),
		(403, ErrorCode.FORBIDDEN),
	],
)
async def test_non_retryable_status_fails_immediately(mock_api, recording_sleep, status, code):
	calls = []

	def handler(request):
		calls.append(request)
		return httpx.Response(status, json={"success": False, "error": "nope"})

	transmitter = ChunkTransmitter(mock_api(handler), sleep=recording_sleep)

	with pytest.raises(TransmitError) as exc_info:
		await transmitter.send(make_chunk(), None, "export.xml")

	assert len(calls) == 1
	assert recording_sleep.delays == []
	assert exc_info.value.code == code
	assert exc_info.value.details["status"] == status
	assert exc_info.value.details["attempt"] == 0


async def test_network_and_timeout_errors_are_retried(mock_api, recording_sleep):
	calls = []

	def handler(request):
		calls.append(request)
		if len(calls) == 1:
			raise httpx.ConnectError("connection refused", request=request)
		if len(calls) == 2:
			raise httpx.ReadTimeout("timed out", request=request)
		return httpx.Response(200, json={"success": True})

	ack = await ChunkTransmitter(mock_api(handler), sleep=recording_sleep).send(make_chunk(), None, "export.xml")

	assert len(calls) == 3
	assert ack.attempts == 3
	assert recording_sleep.delays == [1.0, 2.0]


async def test_checksum_mismatch_warns_but_succeeds(mock_api, observer, recording_sleep):
	def handler(request):
		return httpx.Response(200, json={"success": True, "checksum": "0" * 64})

	chunk = make_chunk()
	ack = await ChunkTransmitter(mock_api(handler), observer=observer, sleep=recording_sleep).send(
		chunk, digest(chunk.data), "export.xml"
	)

	assert ack.status_code == 200
	assert observer.mismatches == [3]


async def test_missing_checksum_is_reported_and_upload_continues(mock_api, observer, recording_sleep):
	requests = []
	transmitter = ChunkTransmitter(mock_api(ok_handler(requests)), observer=observer, sleep=recording_sleep)

	await transmitter.send(make_chunk(), None, "export.xml")

	assert observer.missing_checksums == [3]
	assert requests[0]["checksum"] == b""
	assert observer.mismatches == []


async def test_progress_advances_tracker(mock_api, recording_sleep):
	reports = []
	tracker = ProgressTracker(total=4_000)
	transmitter = ChunkTransmitter(
		mock_api(ok_handler([])), sleep=recording_sleep, tracker=tracker, on_progress=reports.append
	)

	await transmitter.send(make_chunk(number=0, total=4), None, "export.xml")
	await transmitter.send(make_chunk(number=1, total=4), None, "export.xml")

	assert [r.loaded for r in reports] == [1_000, 2_000]
	assert [r.percentage for r in reports] == [25, 50]


async def test_cancelled_token_sends_nothing(mock_api, recording_sleep):
	calls = []

	def handler(request):
		calls.append(request)
		return httpx.Response(200)

	token = CancellationToken()
	token.cancel()
	transmitter = ChunkTransmitter(mock_api(handler), sleep=recording_sleep)

	with pytest.raises(TransferCancelled):
		await transmitter.send(make_chunk(), None, "export.xml", token)

	assert calls == []
	assert transmitter.states[3] is ChunkState.CANCELLED


async def test_cancel_aborts_in_flight_request(mock_api, recording_sleep):
	async def handler(request):
		await asyncio.sleep(10)
		return httpx.Response(200)

	token = CancellationToken()
	asyncio.get_running_loop().call_later(0.01, token.cancel)
	transmitter = ChunkTransmitter(mock_api(handler), sleep=recording_sleep)

	with pytest.raises(TransferCancelled) as exc_info:
		await asyncio.wait_for(transmitter.send(make_chunk(), None, "export.xml", token), timeout=2)

	assert exc_info.value.code == ErrorCode.CANCELLED
	assert recording_sleep.delays == []


def timeout_recorder(seen):
	def handler(request):
		seen.append(request.extensions["timeout"])
		return httpx.Response(200, json={"success": True})
	return handler


async def test_chunk_request_uses_thirty_second_timeout(mock_api, recording_sleep):
	seen = []

	await ChunkTransmitter(mock_api(timeout_recorder(seen)), sleep=recording_sleep).send(make_chunk(), None, "export.xml")

	assert seen == [{"connect": 30.0, "read": 30.0, "write": 30.0, "pool": 30.0}]


async def test_chunk_timeout_can_be_overridden(mock_api, recording_sleep):
	seen = []

	await ChunkTransmitter(mock_api(timeout_recorder(seen), timeout=5.0), sleep=recording_sleep).send(
		make_chunk(), None, "export.xml"
	)

	assert set(seen[0].values()) == {5.0}


async def test_cancel_wakes_retry_wait(mock_api):
	calls = []

	def handler(request):
		calls.append(request)
		return httpx.Response(500)

	policy = RetryPolicy(max_attempts=4, base_delay=3.0, multiplier=2.0, max_delay=10.0)
	token = CancellationToken()
	asyncio.get_running_loop().call_later(0.05, token.cancel)
	transmitter = ChunkTransmitter(mock_api(handler), policy=policy, sleep=asyncio.sleep)

	loop = asyncio.get_running_loop()
	started = loop.time()
	with pytest.raises(TransferCancelled):
		await asyncio.wait_for(transmitter.send(make_chunk(), None, "export.xml", token), timeout=2)

	assert loop.time() - started < 1.0
	assert len(calls) == 1
	assert transmitter.states[3] is ChunkState.CANCELLED


def test_progress_reaches_100_only_when_complete():
	tracker = ProgressTracker(total=1_000)

	assert tracker.advance(996).percentage == 99
	assert tracker.advance(4).percentage == 100
	assert tracker.advance(10).loaded == 1_000
