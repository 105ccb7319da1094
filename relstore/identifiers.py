"""
Record identifier source for relstore.

Hands out globally unique string identifiers from a small look-ahead
buffer. Each allocation pops the buffer front and schedules one
replacement on a background worker.

Invariants:
    - Every generated identifier is appended to the buffer exactly once
      and popped at most once, so next() never returns a duplicate
    - next() never waits on the background worker: on an empty buffer it
      generates an identifier on the calling thread
    - The buffer is primed synchronously at construction

How to change safely:
    - Keep deque append/popleft as the only buffer operations (both are
      atomic under concurrent use)
    - A custom generator must itself return unique strings
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Optional

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 2


def uuid_generator() -> str:
    """Default generator: random UUID4 in canonical text form."""
    return str(uuid.uuid4())


class IdentifierSource:
    """Buffered identifier allocator.

    Attributes:
        buffer_size: Number of identifiers kept ready
        generator: Callable producing one unique identifier per call

    Example:
        >>> ids = IdentifierSource(buffer_size=4)
        >>> first, second = ids.next(), ids.next()
        >>> first != second
        True
        >>> ids.close()
    """

    def __init__(
        self,
        generator: Optional[Callable[[], str]] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")

        self.generator = generator or uuid_generator
        self.buffer_size = buffer_size
        self._buffer: Deque[str] = deque()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="relstore-ids")
        self._closed = False
        self._close_lock = threading.Lock()
        self._underruns = 0

        for _ in range(buffer_size):
            self._buffer.append(self.generator())

    @property
    def available(self) -> int:
        """Identifiers currently buffered."""
        return len(self._buffer)

    @property
    def underruns(self) -> int:
        """How many times next() found the buffer empty."""
        return self._underruns

    def next(self) -> str:
        """Allocate one identifier."""
        try:
            identifier = self._buffer.popleft()
        except IndexError:
            self._underruns += 1
            logger.debug("Identifier buffer empty, generating synchronously")
            identifier = self.generator()

        self._schedule_refill()
        return identifier

    def close(self) -> None:
        """Stop background replenishment. Safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)

    def _schedule_refill(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._executor.submit(self._refill_one)

    def _refill_one(self) -> None:
        if len(self._buffer) >= self.buffer_size:
            return
        try:
            self._buffer.append(self.generator())
        except Exception as e:
            # next() falls back to synchronous generation, which re-raises
            logger.error(f"Identifier refill failed: {e}", exc_info=True)

    def __enter__(self) -> IdentifierSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
