from typing import Optional

from pydantic import BaseModel


class ChunkUploadResponse(BaseModel):
	success: bool = True
	message: str
	isComplete: bool
	chunkNumber: int
	totalChunks: int
	receivedChunks: int
	fileName: str
	checksum: str


class AssembleRequest(BaseModel):
	fileName: str
	totalChunks: int


class AssembleResponse(BaseModel):
	success: bool = True
	message: str
	size: int
	checksum: str


class UploadUrlRequest(BaseModel):
	filename: str
	contentType: Optional[str] = None


class UploadUrlResponse(BaseModel):
	url: str
	key: str


class BlobUploadResponse(BaseModel):
	success: bool = True
	key: str
	size: int
	checksum: str
