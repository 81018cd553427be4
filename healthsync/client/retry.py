import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Collection, Iterator, Optional, TypeVar

from healthsync.core import constants
from healthsync.core.config import settings
from healthsync.core.exceptions import TransferCancelled

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
	"""Exponential backoff shape shared by chunk retries and status polling.

	``max_attempts`` counts every try, the first one included; a chunk policy
	with three retries therefore has four attempts.
	"""

	max_attempts: int
	base_delay: float
	multiplier: float
	max_delay: float
	non_retryable_statuses: Collection[int] = field(default_factory=tuple)

	@property
	def max_retries(self) -> int:
		return max(0, self.max_attempts - 1)

	def backoff(self, attempt: int) -> float:
		return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

	def delays(self) -> Iterator[float]:
		"""Successive delays, each grown from the previous one and capped."""
		delay = self.base_delay
		while True:
			yield min(delay, self.max_delay)
			delay = min(delay * self.multiplier, self.max_delay)

	def is_retryable(self, status_code: Optional[int]) -> bool:
		return status_code is None or status_code not in self.non_retryable_statuses

	@classmethod
	def for_chunks(cls, max_retries: Optional[int] = None) -> "RetryPolicy":
		retries = settings.CHUNK_MAX_RETRIES if max_retries is None else max_retries
		return cls(
			max_attempts=retries + 1,
			base_delay=settings.CHUNK_BASE_BACKOFF,
			multiplier=constants.DEFAULT_CHUNK_BACKOFF_MULTIPLIER,
			max_delay=settings.CHUNK_MAX_BACKOFF,
			non_retryable_statuses=constants.NON_RETRYABLE_STATUSES,
		)

	@classmethod
	def for_polling(cls, max_attempts: Optional[int] = None) -> "RetryPolicy":
		return cls(
			max_attempts=settings.POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts,
			base_delay=settings.POLL_INITIAL_BACKOFF,
			multiplier=settings.POLL_BACKOFF_MULTIPLIER,
			max_delay=settings.POLL_MAX_BACKOFF,
		)


class CancellationToken:
	"""Cooperative cancellation signal passed through every suspending call."""

	def __init__(self) -> None:
		self._event: Optional[asyncio.Event] = None
		self._cancelled = False
		self.reason: Optional[str] = None

	def _ensure_event(self) -> asyncio.Event:
		# Created lazily so the token can be built outside a running loop.
		if self._event is None:
			self._event = asyncio.Event()
			if self._cancelled:
				self._event.set()
		return self._event

	def cancel(self, reason: str = "Upload cancelled") -> None:
		self._cancelled = True
		self.reason = reason
		if self._event is not None:
			self._event.set()

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	async def wait(self) -> None:
		await self._ensure_event().wait()

	async def run(self, awaitable: Awaitable[T]) -> T:
		"""Await ``awaitable`` unless the token fires first.

		When the token fires the in-flight task is cancelled and
		``TransferCancelled`` is raised.
		"""
		task: asyncio.Task[Any] = asyncio.ensure_future(awaitable)
		if self._cancelled:
			task.cancel()
			await asyncio.gather(task, return_exceptions=True)
			raise TransferCancelled(self.reason or "Upload cancelled")
		waiter = asyncio.ensure_future(self.wait())
		try:
			done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			task.cancel()
			raise
		finally:
			waiter.cancel()
		if task in done:
			return task.result()
		task.cancel()
		await asyncio.gather(task, return_exceptions=True)
		raise TransferCancelled(self.reason or "Upload cancelled")

	def raise_if_cancelled(self, **details: Any) -> None:
		if self._cancelled:
			raise TransferCancelled(self.reason or "Upload cancelled", details=details)
