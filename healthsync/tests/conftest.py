import asyncio
import re
from typing import Dict, List

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthsync.client.api import UploadApiClient
from healthsync.client.models import ChunkDescriptor, UploadProgress
from healthsync.client.observer import LoggingObserver
from healthsync.core.config import settings


class RecordingSleep:
	"""Stands in for asyncio.sleep: records the delay, yields once, returns."""

	def __init__(self) -> None:
		self.delays: List[float] = []

	async def __call__(self, delay: float) -> None:
		self.delays.append(delay)
		await asyncio.sleep(0)


class RecordingObserver(LoggingObserver):
	def __init__(self) -> None:
		super().__init__()
		self.mismatches: List[int] = []
		self.missing_checksums: List[int] = []
		self.retries: List[tuple] = []
		self.sent: List[int] = []
		self.job_states: List[str] = []
		self.status_errors: List[int] = []

	def chunk_sent(self, descriptor: ChunkDescriptor, attempts: int, progress: UploadProgress) -> None:
		super().chunk_sent(descriptor, attempts, progress)
		self.sent.append(descriptor.chunk_number)

	def chunk_retry(self, descriptor, attempt, delay, reason, status_code) -> None:
		super().chunk_retry(descriptor, attempt, delay, reason, status_code)
		self.retries.append((descriptor.chunk_number, attempt, delay, status_code))

	def checksum_unavailable(self, descriptor: ChunkDescriptor) -> None:
		self.missing_checksums.append(descriptor.chunk_number)

	def checksum_mismatch(self, descriptor: ChunkDescriptor, local: str, remote: str) -> None:
		super().checksum_mismatch(descriptor, local, remote)
		self.mismatches.append(descriptor.chunk_number)

	def job_state_changed(self, processing_id, state, message) -> None:
		super().job_state_changed(processing_id, state, message)
		self.job_states.append(state.value)

	def job_status_unavailable(self, processing_id, attempt, reason) -> None:
		super().job_status_unavailable(processing_id, attempt, reason)
		self.status_errors.append(attempt)


def parse_multipart(request: httpx.Request) -> Dict[str, bytes]:
	"""Split a multipart/form-data body into {field name: raw value}."""
	boundary = request.headers["content-type"].split("boundary=")[1].encode()
	fields: Dict[str, bytes] = {}
	for part in request.content.split(b"--" + boundary):
		if b"\r\n\r\n" not in part:
			continue
		head, _, body = part.partition(b"\r\n\r\n")
		match = re.search(rb'name="([^"]+)"', head)
		if match:
			fields[match.group(1).decode()] = body[:-2]
	return fields


def sample_bytes(size: int) -> bytes:
	return (bytes(range(251)) * (size // 251 + 1))[:size]


@pytest.fixture
def recording_sleep() -> RecordingSleep:
	return RecordingSleep()


@pytest.fixture
def observer() -> RecordingObserver:
	return RecordingObserver()


@pytest.fixture
async def mock_api():
	"""Build UploadApiClients backed by httpx.MockTransport handlers."""
	clients: List[httpx.AsyncClient] = []

	def _factory(handler, api_token: str = "", timeout=None) -> UploadApiClient:
		http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
		clients.append(http)
		return UploadApiClient(base_url="http://test", api_token=api_token, http_client=http, timeout=timeout)

	yield _factory

	for http in clients:
		await http.aclose()


@pytest.fixture
async def test_app(tmp_path, monkeypatch):
	"""Create a test app with an isolated SQLite database and storage directory."""
	from healthsync.server.db.models import Base
	from healthsync.server.db.session import build_engine, get_session
	from healthsync.server.main import create_app
	from healthsync.server.services.processing import ProcessingManager, get_processing_manager
	from healthsync.server.services.uploads import UploadManager, get_upload_manager

	monkeypatch.setattr(settings, "STORAGE_DIR", str(tmp_path / "storage"))
	monkeypatch.setattr(settings, "UPLOAD_API_TOKEN", None)
	monkeypatch.setattr(settings, "DISABLE_BACKGROUND", False)

	test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
	async with test_engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	TestingSessionLocal = async_sessionmaker(
		test_engine, class_=AsyncSession, expire_on_commit=False
	)

	async def override_get_session():
		async with TestingSessionLocal() as session:
			yield session

	upload_manager = UploadManager()
	processing_manager = ProcessingManager(session_factory=TestingSessionLocal, upload_manager=upload_manager)

	app = create_app(with_lifespan=False)
	app.dependency_overrides[get_session] = override_get_session
	app.dependency_overrides[get_upload_manager] = lambda: upload_manager
	app.dependency_overrides[get_processing_manager] = lambda: processing_manager
	app.state.processing_manager = processing_manager
	app.state.session_factory = TestingSessionLocal

	yield app

	await processing_manager.stop()
	await test_engine.dispose()


@pytest.fixture
async def client(test_app):
	"""Create a test client."""
	async with httpx.AsyncClient(transport=httpx.ASGITransport(app=test_app), base_url="http://test") as ac:
		yield ac


@pytest.fixture
async def server_api(client):
	"""An UploadApiClient talking to the in-process test server."""
	return UploadApiClient(base_url="http://test", api_token="", http_client=client)
