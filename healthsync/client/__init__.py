"""
Client side of the healthsync upload-and-process pipeline.
"""

from .api import UploadApiClient
from .coordinator import UploadCoordinator, UploadOptions
from .models import ChunkDescriptor, FinalAck, JobState, ProcessingResult, UploadProgress, UploadSource
from .pipeline import HealthDataUploader
from .planner import choose_chunk_size, plan_chunks
from .poller import ProcessingJobPoller
from .presigned import PresignedUploader
from .retry import CancellationToken, RetryPolicy
from .transmitter import ChunkTransmitter
from .validation import validate_file

__all__ = [
	"UploadApiClient",
	"UploadCoordinator",
	"UploadOptions",
	"ChunkDescriptor",
	"FinalAck",
	"JobState",
	"ProcessingResult",
	"UploadProgress",
	"UploadSource",
	"HealthDataUploader",
	"choose_chunk_size",
	"plan_chunks",
	"ProcessingJobPoller",
	"PresignedUploader",
	"CancellationToken",
	"RetryPolicy",
	"ChunkTransmitter",
	"validate_file",
]
