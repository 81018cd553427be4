from .files import (
	AssembleRequest,
	AssembleResponse,
	BlobUploadResponse,
	ChunkUploadResponse,
	UploadUrlRequest,
	UploadUrlResponse,
)
from .processing import ProcessRequest, ProcessStartResponse, ProcessingStatusResponse, ResultMessage
