"""
Retrying batch invoker
Splits inputs into chunks and calls the prediction service with bounded concurrency, retries and backoff
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from ..config import ChunkPolicy, PredictionServiceConfig
from ..logger import logger

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchConfig:
    """
    Policy for one batch invocation

    Attributes:
        chunk_size: Items per remote call (last chunk may be smaller)
        concurrency: Maximum chunk calls in flight
        max_retries: Retries per chunk after the first attempt
        base_delay_ms: Backoff base; attempt n sleeps base * 2**n
        request_delay_ms: Pause between consecutive dispatches of one worker
        max_delay_ms: Cap for a single backoff sleep
        jitter: Use full jitter (uniform in [0, delay]) for backoff sleeps
    """
    chunk_size: int = 10
    concurrency: int = 3
    max_retries: int = 2
    base_delay_ms: int = 2000
    request_delay_ms: int = 100
    max_delay_ms: int = 30000
    jitter: bool = False

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @classmethod
    def for_stage(cls, service: PredictionServiceConfig, policy: ChunkPolicy,
                  jitter: bool = False) -> "BatchConfig":
        """Combine the service-wide retry settings with a stage's chunk policy"""
        return cls(
            chunk_size=policy.chunk_size,
            concurrency=service.batch_concurrency,
            max_retries=service.max_retries,
            base_delay_ms=service.retry_base_delay_ms,
            request_delay_ms=max(service.request_delay_ms, policy.chunk_delay_ms),
            max_delay_ms=service.retry_max_delay_ms,
            jitter=jitter,
        )


@dataclass
class CompletedChunk(Generic[T, R]):
    index: int
    items: List[T]
    results: List[R]
    attempts: int


@dataclass
class FailedChunk(Generic[T]):
    """
    A chunk whose call never succeeded

    index is None for inputs rejected before any call was made.
    """
    index: Optional[int]
    items: List[T]
    error: BaseException
    attempts: int


@dataclass
class BatchResult(Generic[T, R]):
    """
    Outcome of a batch invocation

    Every input ends up in exactly one completed or failed chunk.
    """
    completed_chunks: List[CompletedChunk] = field(default_factory=list)
    failed_chunks: List[FailedChunk] = field(default_factory=list)

    @property
    def results(self) -> List[R]:
        ordered = sorted(self.completed_chunks, key=lambda chunk: chunk.index)
        return [result for chunk in ordered for result in chunk.results]

    @property
    def has_failures(self) -> bool:
        return len(self.failed_chunks) > 0

    @property
    def failed_items(self) -> List[T]:
        return [item for chunk in self.failed_chunks for item in chunk.items]


def chunk_items(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split items into consecutive chunks of at most size elements

    Args:
        items: Items to split
        size: Maximum chunk length

    Returns:
        List[List[T]]: Chunks whose concatenation equals items
    """
    if size < 1:
        raise ValueError("size must be at least 1")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


def _default_should_retry(error: BaseException) -> bool:
    return bool(getattr(error, "retryable", False))


class RetryingBatchInvoker:
    """
    Concurrency-bounded, retrying executor for chunked remote calls

    A pool of min(concurrency, chunk_count) workers pulls chunks in order.
    Each chunk is attempted up to max_retries + 1 times; only errors whose
    retryable attribute is true are retried, anything else fails the chunk
    at once.
    """

    def __init__(
        self,
        config: BatchConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize invoker

        Args:
            config: Batch policy
            sleep: Coroutine used for every pause (seconds)
            should_retry: Predicate deciding whether an error is transient
            rng: Random source for jitter
        """
        self.config = config
        self._sleep = sleep
        self._should_retry = should_retry or _default_should_retry
        self._rng = rng or random.Random()

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay before retry number attempt + 1 (attempt counts from 0)"""
        delay = min(self.config.base_delay_ms * (2 ** attempt), self.config.max_delay_ms)
        if self.config.jitter:
            delay = self._rng.uniform(0, delay)
        return delay

    async def invoke(
        self,
        items: Sequence[T],
        call_fn: Callable[[List[T]], Awaitable[Sequence[R]]],
        label: str = "batch"
    ) -> BatchResult:
        """
        Run call_fn over every chunk of items

        Args:
            items: Inputs to send
            call_fn: Coroutine function sending one chunk and returning its results
            label: Name used in log messages

        Returns:
            BatchResult: Completed and failed chunks
        """
        chunks = chunk_items(items, self.config.chunk_size)
        result = BatchResult()
        if not chunks:
            return result

        queue: asyncio.Queue = asyncio.Queue()
        for index, chunk in enumerate(chunks):
            queue.put_nowait((index, chunk))

        worker_count = min(self.config.concurrency, len(chunks))
        logger.info(
            f"{label}: dispatching {len(items)} items in {len(chunks)} chunks "
            f"with {worker_count} workers"
        )

        async def worker(worker_id: int) -> None:
            dispatched = False
            while True:
                try:
                    index, chunk = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if dispatched and self.config.request_delay_ms > 0:
                    await self._sleep(self.config.request_delay_ms / 1000.0)
                dispatched = True
                outcome = await self._run_chunk(index, chunk, call_fn, label)
                if isinstance(outcome, CompletedChunk):
                    result.completed_chunks.append(outcome)
                else:
                    result.failed_chunks.append(outcome)

        await asyncio.gather(*(worker(i) for i in range(worker_count)))

        # workers finish out of order
        result.completed_chunks.sort(key=lambda chunk: chunk.index)
        result.failed_chunks.sort(key=lambda chunk: chunk.index)
        logger.info(
            f"{label}: {len(result.completed_chunks)} chunks completed, "
            f"{len(result.failed_chunks)} failed"
        )
        return result

    async def _run_chunk(self, index: int, chunk: List[T], call_fn, label: str):
        last_error: Optional[BaseException] = None
        attempts = 0
        for attempt in range(self.config.max_retries + 1):
            attempts = attempt + 1
            try:
                results = await call_fn(chunk)
                return CompletedChunk(index=index, items=chunk, results=list(results), attempts=attempts)
            except Exception as e:
                last_error = e
                if not self._should_retry(e):
                    logger.warning(f"{label}: chunk {index} failed without retry: {str(e)}")
                    break
                if attempt == self.config.max_retries:
                    logger.error(f"{label}: chunk {index} failed after {attempts} attempts: {str(e)}")
                    break
                delay = self.backoff_delay_ms(attempt)
                logger.warning(
                    f"{label}: chunk {index} attempt {attempts} failed ({str(e)}), "
                    f"retrying in {delay:.0f}ms"
                )
                await self._sleep(delay / 1000.0)
        return FailedChunk(index=index, items=chunk, error=last_error, attempts=attempts)
