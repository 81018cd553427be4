import asyncio
import hashlib
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthsync.core import constants
from healthsync.core.config import settings
from healthsync.server.db.models import ProcessingTask
from healthsync.server.db.session import get_session
from healthsync.server.schemas import (
	AssembleRequest,
	AssembleResponse,
	BlobUploadResponse,
	ChunkUploadResponse,
	ProcessingStatusResponse,
	ProcessRequest,
	ProcessStartResponse,
	ResultMessage,
	UploadUrlRequest,
	UploadUrlResponse,
)
from healthsync.server.services import signing, storage
from healthsync.server.services.processing import ProcessingManager, get_processing_manager
from healthsync.server.services.uploads import MissingChunksError, UploadManager, get_upload_manager

router = APIRouter()


def require_token(authorization: Optional[str] = Header(None)) -> None:
	if not settings.UPLOAD_API_TOKEN:
		return
	if not authorization or not authorization.startswith("Bearer "):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
	if authorization[len("Bearer "):] != settings.UPLOAD_API_TOKEN:
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _parse_int(value: Optional[str]) -> Optional[int]:
	try:
		return int(value) if value is not None else None
	except ValueError:
		return None


@router.post("/upload-chunk", response_model=ChunkUploadResponse, dependencies=[Depends(require_token)])
async def upload_chunk(
	chunk: Optional[UploadFile] = File(None),
	chunkNumber: Optional[str] = Form(None),
	totalChunks: Optional[str] = Form(None),
	isLastChunk: str = Form("false"),
	fileName: Optional[str] = Form(None),
	checksum: str = Form(""),
	session: AsyncSession = Depends(get_session),
	uploads: UploadManager = Depends(get_upload_manager),
) -> ChunkUploadResponse:
	if chunk is None:
		raise HTTPException(status_code=400, detail="No chunk provided")
	if not fileName:
		raise HTTPException(status_code=400, detail="No fileName provided")
	number = _parse_int(chunkNumber)
	total = _parse_int(totalChunks)
	if number is None or total is None or number < 0 or total < 1 or number >= total:
		raise HTTPException(status_code=400, detail="Invalid chunk number or total chunks")

	data = await chunk.read()
	if len(data) > settings.max_chunk_bytes:
		raise HTTPException(
			status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
			detail=f"Chunk size too large ({len(data)} bytes)",
		)

	file_name = storage.get_safe_filename(fileName)
	upload, stored, received = await uploads.receive_chunk(session, file_name, number, total, data, checksum or None)
	is_last = isLastChunk.lower() == "true"
	if is_last:
		message = "File upload completed"
	else:
		message = f"Chunk {number} of {total} uploaded successfully"
	return ChunkUploadResponse(
		message=message,
		isComplete=received >= total,
		chunkNumber=number,
		totalChunks=total,
		receivedChunks=received,
		fileName=file_name,
		checksum=stored.checksum,
	)


@router.post("/assemble-chunks", response_model=AssembleResponse, dependencies=[Depends(require_token)])
async def assemble_chunks(
	payload: AssembleRequest,
	session: AsyncSession = Depends(get_session),
	uploads: UploadManager = Depends(get_upload_manager),
) -> AssembleResponse:
	upload = await uploads.find_upload(session, storage.get_safe_filename(payload.fileName))
	if upload is None:
		raise HTTPException(status_code=404, detail="Upload not found")
	if upload.total_chunks != payload.totalChunks:
		raise HTTPException(status_code=400, detail=f"Expected {upload.total_chunks} chunks, got {payload.totalChunks}")
	try:
		upload = await uploads.assemble(session, upload)
	except MissingChunksError as e:
		raise HTTPException(status_code=400, detail=str(e))
	return AssembleResponse(message="File assembled successfully", size=upload.size_bytes, checksum=upload.checksum or "")


@router.post("/process", response_model=ProcessStartResponse, dependencies=[Depends(require_token)])
async def start_processing(
	payload: Optional[ProcessRequest] = Body(None),
	session: AsyncSession = Depends(get_session),
	uploads: UploadManager = Depends(get_upload_manager),
	processing: ProcessingManager = Depends(get_processing_manager),
) -> ProcessStartResponse:
	file_name = storage.get_safe_filename(payload.fileName) if payload and payload.fileName else None
	upload = await uploads.find_upload(session, file_name)
	if upload is None:
		raise HTTPException(status_code=404, detail="No uploaded files found")
	if upload.status == constants.STATUS_RECEIVING:
		received = await uploads.count_chunks(session, upload.id)
		if received < upload.total_chunks:
			raise HTTPException(status_code=400, detail=str(MissingChunksError(received, upload.total_chunks)))

	task = await processing.create_task(session, upload)
	if not settings.DISABLE_BACKGROUND:
		processing.schedule(task.id)
	return ProcessStartResponse(processingId=task.id, message="Processing started successfully")


@router.get("/process/status", response_model=ProcessingStatusResponse, response_model_exclude_none=True, dependencies=[Depends(require_token)])
async def processing_status(
	processingId: Optional[str] = Query(None),
	session: AsyncSession = Depends(get_session),
) -> ProcessingStatusResponse:
	if not processingId:
		raise HTTPException(status_code=400, detail="Processing ID is required")
	task = await session.get(ProcessingTask, processingId, populate_existing=True)
	if task is None:
		raise HTTPException(status_code=404, detail="Processing status not found")
	results = [ResultMessage(**r) for r in task.results] if task.results else None
	return ProcessingStatusResponse(
		status=task.status,
		completed=task.status == constants.STATUS_COMPLETED,
		error=task.error_message if task.status == constants.STATUS_ERROR else None,
		progress=task.progress,
		message=task.message,
		results=results,
	)


@router.post("/upload-url", response_model=UploadUrlResponse, dependencies=[Depends(require_token)])
async def create_upload_url(payload: UploadUrlRequest, request: Request) -> UploadUrlResponse:
	if not payload.filename:
		raise HTTPException(status_code=400, detail="Filename is required")
	key = f"uploads/{uuid.uuid4()}/{storage.get_safe_filename(payload.filename)}"
	expires = signing.make_expiry()
	signature = signing.sign(key, expires)
	base = str(request.base_url).rstrip("/")
	return UploadUrlResponse(url=f"{base}/api/blob/{key}?expires={expires}&signature={signature}", key=key)


@router.put("/blob/{key:path}", response_model=BlobUploadResponse)
async def put_blob(
	key: str,
	request: Request,
	expires: int = Query(...),
	signature: str = Query(...),
	session: AsyncSession = Depends(get_session),
	uploads: UploadManager = Depends(get_upload_manager),
) -> BlobUploadResponse:
	if not signing.verify(key, expires, signature):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired upload URL")
	data = await request.body()
	if len(data) > settings.max_upload_bytes:
		raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File size exceeds configured limit")

	path = storage.blob_path(key)

	def _write() -> None:
		os.makedirs(os.path.dirname(path), exist_ok=True)
		with open(path, "wb") as out:
			out.write(data)

	await asyncio.to_thread(_write)
	checksum = hashlib.sha256(data).hexdigest()
	await uploads.register_blob(session, os.path.basename(path), path, len(data), checksum)
	return BlobUploadResponse(key=key, size=len(data), checksum=checksum)
