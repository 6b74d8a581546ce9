"""
Bounded pool of predictor handles.

Predictor handles are stateful and not thread-safe. The pool owns a fixed
number of them and hands each to one caller at a time through a FIFO
blocking queue, which also bounds the number of concurrent predictions
regardless of how many worker threads process tiles.
"""

import logging
import queue
import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from ..errors import InvalidConfiguration, ModelLoadError, ResourceExhausted

logger = logging.getLogger(__name__)


def _close_quietly(resource: Any, what: str) -> None:
    close = getattr(resource, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as e:
        logger.error(f"Failed to close {what}: {e}")


class PredictorPool:
    """
    Pool of predictor handles created from a model factory.

    Example:
        >>> with PredictorPool(factory, size=2) as pool:
        ...     with pool.predictor() as handle:
        ...         output = handle.predict(tile)
    """

    def __init__(
        self,
        factory: Any,
        size: int = 1,
        timeout: Optional[float] = None,
        close_factory: bool = True,
    ):
        """
        Create the pool and its handles.

        Args:
            factory: Object with ``new_predictor()``; closed with the pool if it has ``close()``
            size: Number of handles
            timeout: Default seconds acquire() waits (None = forever)
            close_factory: Close the factory together with the handles

        Raises:
            ModelLoadError: If any handle cannot be created
        """
        if size < 1:
            raise InvalidConfiguration(f"size must be >= 1, got {size}")

        self.factory = factory
        self.size = size
        self.timeout = timeout
        self.close_factory = close_factory
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=size)
        self._handles: List[Any] = []
        self._lock = threading.Lock()
        self._outstanding = 0
        self._closed = False

        try:
            for _ in range(size):
                handle = factory.new_predictor()
                self._handles.append(handle)
                self._queue.put_nowait(handle)
        except Exception as e:
            self.close()
            raise ModelLoadError(f"Unable to create predictor: {e}") from e

        logger.info(f"Created predictor pool with {size} handle(s)")

    @property
    def outstanding(self) -> int:
        """Number of handles currently acquired and not yet released."""
        with self._lock:
            return self._outstanding

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: Optional[float] = None) -> Any:
        """
        Take a handle, blocking until one is free.

        Args:
            timeout: Seconds to wait, overriding the pool default

        Raises:
            ResourceExhausted: If the pool is closed or no handle became free in time
        """
        if self._closed:
            raise ResourceExhausted("Predictor pool is closed")

        timeout = self.timeout if timeout is None else timeout
        try:
            handle = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise ResourceExhausted(
                f"No predictor became available within {timeout} seconds"
            ) from None

        with self._lock:
            self._outstanding += 1
        return handle

    def release(self, handle: Any) -> None:
        """Return a handle to the pool."""
        with self._lock:
            self._outstanding -= 1
        self._queue.put_nowait(handle)

    @contextmanager
    def predictor(self, timeout: Optional[float] = None) -> Iterator[Any]:
        """Acquire a handle for the duration of a block; always released."""
        handle = self.acquire(timeout)
        try:
            yield handle
        finally:
            self.release(handle)

    def close(self) -> None:
        """Close all handles and the factory. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self.outstanding:
            logger.warning(f"Closing predictor pool with {self.outstanding} handle(s) in use")

        for handle in self._handles:
            _close_quietly(handle, "predictor")
        self._handles = []
        if self.close_factory:
            _close_quietly(self.factory, "model")
        logger.debug("Predictor pool closed")

    def __enter__(self) -> "PredictorPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
