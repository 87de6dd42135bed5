"""Throttled, batched writes against the target catalog."""

import time
from typing import Callable, List, Optional, Sequence

from spotify2tidal.retry import RetryExecutor
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

# Hard per-request limit of the Tidal playlist items endpoint
DEFAULT_BATCH_SIZE = 20
DEFAULT_INTER_BATCH_DELAY_MS = 1000


def chunk_ids(ids: Sequence[str], batch_size: int) -> List[List[str]]:
    """
    Split ids into consecutive chunks of at most batch_size.

    Args:
        ids: Ordered ids
        batch_size: Maximum chunk length

    Returns:
        ceil(len(ids) / batch_size) non-empty chunks, order preserved

    Raises:
        ValueError: If batch_size is smaller than 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    ids = list(ids)
    return [ids[i:i + batch_size] for i in range(0, len(ids), batch_size)]


class BatchScheduler:
    """Drives chunked writes sequentially with a pause between chunks."""

    def __init__(
        self,
        retry_executor: RetryExecutor,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay_ms: int = DEFAULT_INTER_BATCH_DELAY_MS,
        sleep: Callable[[float], None] = time.sleep
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.retry_executor = retry_executor
        self.batch_size = batch_size
        self.inter_batch_delay_ms = inter_batch_delay_ms
        self.sleep = sleep

    def write_batched(
        self,
        ids: Sequence[str],
        write_op: Callable[[List[str]], object],
        operation_name: str = "write",
        batch_size: Optional[int] = None,
        inter_batch_delay_ms: Optional[int] = None
    ) -> int:
        """
        Write ids in chunks, one chunk at a time.

        A chunk that still fails after retries aborts the remaining chunks and
        the error propagates to the caller.

        Args:
            ids: Ordered ids to write
            write_op: Callable receiving one chunk
            operation_name: Label for logs and retry errors
            batch_size: Override of the scheduler's batch size
            inter_batch_delay_ms: Override of the pause between chunks

        Returns:
            Number of chunks written
        """
        size = batch_size if batch_size is not None else self.batch_size
        delay_ms = inter_batch_delay_ms if inter_batch_delay_ms is not None else self.inter_batch_delay_ms
        chunks = chunk_ids(ids, size)
        total_batches = len(chunks)

        if not chunks:
            return 0

        logger.info(f"📦 {operation_name}: {len(ids)} tracks in {total_batches} batches of up to {size}")

        for number, chunk in enumerate(chunks, 1):
            logger.debug(f"   {operation_name} batch {number}/{total_batches}: {len(chunk)} tracks")
            try:
                self.retry_executor.execute(
                    lambda chunk=chunk: write_op(chunk),
                    f"{operation_name} (batch {number}/{total_batches})"
                )
            except Exception as e:
                logger.error(f"   ❌ {operation_name} batch {number}/{total_batches} failed: {e}")
                raise

            if number < total_batches and delay_ms > 0:
                self.sleep(delay_ms / 1000)

        logger.info(f"✅ {operation_name}: {total_batches} batches written")
        return total_batches
