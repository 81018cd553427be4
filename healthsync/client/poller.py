import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from healthsync.client.models import JobState, ProcessingJob, ProcessingResult
from healthsync.client.observer import LoggingObserver, UploadObserver
from healthsync.client.retry import CancellationToken, RetryPolicy, Sleep
from healthsync.core import constants
from healthsync.core.exceptions import ProcessingFailedError, ProcessingStartError, UploadError

StartTrigger = Callable[[], Awaitable[str]]
StatusFetcher = Callable[[str], Awaitable[Dict[str, Any]]]
StatusUpdate = Callable[[str], None]


class ProcessingJobPoller:
	"""Starts a server-side job and polls it with growing intervals.

	Exhausting the attempt budget is not a failure: the job may outlive the
	polling window, so the result comes back as ``TIMED_OUT`` with an
	advisory message instead of raising.
	"""

	def __init__(
		self,
		policy: Optional[RetryPolicy] = None,
		observer: Optional[UploadObserver] = None,
		sleep: Sleep = asyncio.sleep,
	) -> None:
		self.policy = policy or RetryPolicy.for_polling()
		self.observer = observer or LoggingObserver()
		self.sleep = sleep

	async def run(
		self,
		start_trigger: StartTrigger,
		status_fetcher: StatusFetcher,
		update_status: Optional[StatusUpdate] = None,
		cancel_token: Optional[CancellationToken] = None,
	) -> ProcessingResult:
		token = cancel_token or CancellationToken()
		notify = update_status or (lambda message: None)

		notify("Starting processing...")
		try:
			processing_id = await start_trigger()
		except UploadError:
			raise
		except Exception as e:
			raise ProcessingStartError(f"Failed to start processing: {e}") from e
		if not processing_id:
			raise ProcessingStartError("Processing started without a processing id")

		job = ProcessingJob(processing_id=processing_id)
		self._transition(job, JobState.STARTED, "Processing started. Waiting for results...")
		notify(job.last_progress_message)

		delays = self.policy.delays()
		for attempt in range(self.policy.max_attempts):
			token.raise_if_cancelled(processing_id=processing_id, attempt=attempt)
			await token.run(self.sleep(next(delays)))
			token.raise_if_cancelled(processing_id=processing_id, attempt=attempt)
			if job.state is JobState.STARTED:
				self._transition(job, JobState.POLLING, job.last_progress_message)
			job.attempts = attempt + 1

			try:
				status = await status_fetcher(processing_id)
			except httpx.HTTPError as e:
				self.observer.job_status_unavailable(processing_id, attempt, str(e))
				continue

			if status.get("completed"):
				job.results = list(status.get("results") or [])
				message = status.get("message") or "Processing completed successfully!"
				self._transition(job, JobState.COMPLETED, message)
				notify(message)
				return ProcessingResult(
					processing_id=processing_id,
					state=job.state,
					message=message,
					results=job.results,
					attempts=job.attempts,
				)
			if status.get("error"):
				error = str(status["error"])
				self._transition(job, JobState.FAILED, error)
				raise ProcessingFailedError(error, details={"processing_id": processing_id, "attempt": attempt})

			progress = status.get("progress") or constants.WAITING_FOR_PROGRESS_MESSAGE
			job.last_progress_message = progress
			notify(progress)

		self._transition(job, JobState.TIMED_OUT, constants.STILL_RUNNING_MESSAGE)
		notify(constants.STILL_RUNNING_MESSAGE)
		return ProcessingResult(
			processing_id=processing_id,
			state=job.state,
			message=constants.STILL_RUNNING_MESSAGE,
			results=job.results,
			attempts=job.attempts,
		)

	def _transition(self, job: ProcessingJob, state: JobState, message: str) -> None:
		if job.state.is_terminal:
			raise RuntimeError(f"Processing job {job.processing_id} already ended as {job.state.value}")
		job.state = state
		job.last_progress_message = message
		self.observer.job_state_changed(job.processing_id, state, message)
