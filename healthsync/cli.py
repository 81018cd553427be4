#!/usr/bin/env python3
"""
Upload a health-data export in chunks and wait for the server to process it.
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from healthsync.client import HealthDataUploader, PresignedUploader, UploadApiClient, UploadOptions, UploadSource
from healthsync.client.models import JobState, UploadProgress
from healthsync.core.config import settings
from healthsync.core.exceptions import TransferCancelled, UploadError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(
		description="Upload a file in chunks and poll its processing job"
	)
	parser.add_argument("path", help="File to upload")
	parser.add_argument("--base-url", dest="base_url", default=settings.UPLOAD_BASE_URL, help="Server base URL")
	parser.add_argument("--token", dest="token", default=settings.UPLOAD_API_TOKEN, help="Bearer token for the upload API")
	parser.add_argument("--parallel", dest="parallel", type=int, default=settings.MAX_PARALLEL_UPLOADS, help="Chunks sent concurrently per group")
	parser.add_argument("--max-retries", dest="max_retries", type=int, default=settings.CHUNK_MAX_RETRIES, help="Retries per chunk")
	parser.add_argument("--chunk-size", dest="chunk_size", type=int, default=None, help="Override chunk size in bytes")
	parser.add_argument("--presigned", action="store_true", help="Upload in one request through a presigned URL")
	parser.add_argument("--no-process", dest="process", action="store_false", help="Upload only, do not start processing")
	args = parser.parse_args(argv)
	if args.parallel < 1:
		parser.error("--parallel must be >= 1")
	if args.max_retries < 0:
		parser.error("--max-retries must be >= 0")
	if args.chunk_size is not None and args.chunk_size <= 0:
		parser.error("--chunk-size must be > 0")
	return args


def _print_progress(progress: UploadProgress) -> None:
	sys.stdout.write(f"\rUploading... {progress.percentage:3d}% ({progress.loaded}/{progress.total} bytes)")
	sys.stdout.flush()
	if progress.loaded >= progress.total:
		sys.stdout.write("\n")


def _print_status(message: str) -> None:
	print(message)


async def run(args: argparse.Namespace) -> int:
	source = UploadSource.from_path(args.path)
	async with UploadApiClient(base_url=args.base_url, api_token=args.token) as api:
		uploader = HealthDataUploader(api)
		if args.presigned:
			if not args.process:
				key = await PresignedUploader(api).upload(source, on_progress=_print_progress)
				print(f"Uploaded {source.name} as {key}")
				return 0
			result = await uploader.upload_presigned_and_process(source, _print_progress, _print_status)
		else:
			options = UploadOptions(
				chunk_size=args.chunk_size,
				max_retries=args.max_retries,
				max_parallel=args.parallel,
				on_progress=_print_progress,
			)
			if not args.process:
				ack = await uploader.upload(source, options)
				print(f"Uploaded {ack.file_name} in {ack.total_chunks} chunks")
				return 0
			result = await uploader.upload_and_process(source, options, _print_status)

	for item in result.results:
		print(f"  - {item.get('message', item)}")
	if result.state is JobState.TIMED_OUT:
		print(f"Processing id: {result.processing_id}")
	return 0


def main(argv: Optional[List[str]] = None) -> int:
	args = parse_args(argv)
	try:
		return asyncio.run(run(args))
	except TransferCancelled as e:
		print(f"Cancelled: {e.message}", file=sys.stderr)
		return 130
	except KeyboardInterrupt:
		print("Cancelled", file=sys.stderr)
		return 130
	except UploadError as e:
		print(f"Error [{e.code.value}]: {e.message}", file=sys.stderr)
		return 1
	except OSError as e:
		print(f"Error: {e}", file=sys.stderr)
		return 1


if __name__ == "__main__":
	sys.exit(main())
