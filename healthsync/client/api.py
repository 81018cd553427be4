"""HTTP transport for the chunk, processing and presigned-upload endpoints."""
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

import httpx

from healthsync.client.models import ChunkDescriptor
from healthsync.core import constants
from healthsync.core.config import settings
from healthsync.core.exceptions import ProcessingStartError

PUT_PIECE_SIZE = 64 * constants.KIB


def error_text(response: httpx.Response, fallback: str) -> str:
	"""Pull ``error``/``details`` out of a JSON error body, if there is one."""
	try:
		body = response.json()
	except ValueError:
		body = None
	if isinstance(body, dict):
		message = body.get("error") or body.get("details") or body.get("detail")
		if message:
			return str(message)
	return fallback


def json_body(response: httpx.Response) -> Dict[str, Any]:
	try:
		body = response.json()
	except ValueError:
		return {}
	return body if isinstance(body, dict) else {"data": body}


class UploadApiClient:
	def __init__(
		self,
		base_url: Optional[str] = None,
		api_token: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
		timeout: Optional[float] = None,
	) -> None:
		self.base_url = (base_url or settings.UPLOAD_BASE_URL).rstrip("/")
		self.api_token = api_token if api_token is not None else settings.UPLOAD_API_TOKEN
		self.timeout = settings.CHUNK_TIMEOUT if timeout is None else timeout
		self._owns_client = http_client is None
		self.http = http_client or httpx.AsyncClient(base_url=self.base_url)

	async def __aenter__(self) -> "UploadApiClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()

	async def aclose(self) -> None:
		if self._owns_client:
			await self.http.aclose()

	def _headers(self) -> Dict[str, str]:
		if not self.api_token:
			return {}
		return {"Authorization": f"Bearer {self.api_token}"}

	def _url(self, path: str) -> str:
		return f"{self.base_url}{path}"

	async def upload_chunk(
		self,
		descriptor: ChunkDescriptor,
		file_name: str,
		checksum: Optional[str],
	) -> httpx.Response:
		data = {
			"chunkNumber": str(descriptor.chunk_number),
			"totalChunks": str(descriptor.total_chunks),
			"isLastChunk": "true" if descriptor.is_last_chunk else "false",
			"fileName": file_name,
			"checksum": checksum or "",
		}
		files = {"chunk": (f"{file_name}.chunk{descriptor.chunk_number}", descriptor.data, "application/octet-stream")}
		return await self.http.post(
			self._url(constants.UPLOAD_CHUNK_PATH),
			data=data,
			files=files,
			headers=self._headers(),
			timeout=self.timeout,
		)

	async def start_processing(self, file_name: Optional[str] = None) -> str:
		payload = {"fileName": file_name} if file_name else {}
		try:
			response = await self.http.post(
				self._url(constants.PROCESS_PATH),
				json=payload,
				headers=self._headers(),
				timeout=self.timeout,
			)
		except httpx.HTTPError as e:
			raise ProcessingStartError(f"Failed to start processing: {e}") from e
		if response.is_error:
			raise ProcessingStartError(
				error_text(response, "Failed to start processing"),
				details={"status": response.status_code},
			)
		processing_id = json_body(response).get("processingId")
		if not processing_id:
			raise ProcessingStartError("Processing started without a processing id", details={"status": response.status_code})
		return str(processing_id)

	async def fetch_status(self, processing_id: str) -> Dict[str, Any]:
		response = await self.http.get(
			self._url(constants.PROCESS_STATUS_PATH),
			params={"processingId": processing_id},
			headers=self._headers(),
			timeout=self.timeout,
		)
		body = json_body(response)
		if response.is_error and not body.get("error"):
			response.raise_for_status()
		return body

	async def request_upload_url(self, file_name: str, content_type: str) -> Tuple[str, str]:
		response = await self.http.post(
			self._url(constants.UPLOAD_URL_PATH),
			json={"filename": file_name, "contentType": content_type},
			headers=self._headers(),
			timeout=self.timeout,
		)
		if response.is_error:
			raise httpx.HTTPStatusError(
				error_text(response, "Failed to get upload URL"), request=response.request, response=response
			)
		body = json_body(response)
		return body["url"], body["key"]

	async def put_file(
		self,
		url: str,
		data: bytes,
		content_type: str,
		on_bytes: Optional[Callable[[int], None]] = None,
		timeout: Optional[float] = None,
	) -> httpx.Response:
		async def _body() -> AsyncIterator[bytes]:
			for start in range(0, len(data), PUT_PIECE_SIZE):
				piece = data[start:start + PUT_PIECE_SIZE]
				yield piece
				if on_bytes:
					on_bytes(len(piece))

		return await self.http.put(
			url,
			content=_body(),
			headers={"Content-Type": content_type, "Content-Length": str(len(data))},
			timeout=timeout,
		)
