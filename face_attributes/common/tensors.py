"""
Owned tensor buffers with explicit lifetimes.

Every numeric array that flows between pipeline stages (normalized images,
warm-up inputs, forward-pass outputs) is wrapped in a TensorBuffer created by
a TensorTracker. The tracker counts live buffers so that leaks show up as a
non-zero `num_tensors` after a request finishes.

Release is scoped: a buffer is a context manager, and `TensorTracker.scope()`
disposes everything allocated inside it that was not explicitly kept.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .errors import BufferDisposedError

logger = logging.getLogger(__name__)


class TensorBuffer:
    """A numpy array owned by exactly one pipeline stage until disposed."""

    def __init__(self, array: np.ndarray, tracker: "TensorTracker", name: Optional[str] = None):
        self._array: Optional[np.ndarray] = array
        self._tracker = tracker
        self._disposed = False
        self._kept = False
        self.name = name
        self.shape: Tuple[int, ...] = tuple(array.shape)
        self.dtype = array.dtype

    @property
    def data(self) -> np.ndarray:
        """The underlying array. Raises once the buffer has been disposed."""
        if self._disposed:
            raise BufferDisposedError(f"Tensor buffer {self.name!r} has been disposed")
        return self._array

    @property
    def disposed(self) -> bool:
        return self._disposed

    def numpy(self) -> np.ndarray:
        """Return a detached copy that outlives the buffer."""
        return self.data.copy()

    def keep(self) -> "TensorBuffer":
        """Exclude this buffer from disposal by the enclosing tracker scope."""
        self._kept = True
        return self

    def dispose(self) -> None:
        """Release the buffer. Releasing twice is a no-op."""
        if self._tracker._release(self):
            self._array = None

    def __enter__(self) -> "TensorBuffer":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"TensorBuffer(name={self.name!r}, shape={self.shape}, dtype={self.dtype}, {state})"


class TensorTracker:
    """Allocates tensor buffers and counts the ones still alive."""

    def __init__(self):
        self._lock = threading.Lock()
        self._live = 0
        self._allocations = 0
        self._local = threading.local()

    @property
    def num_tensors(self) -> int:
        """Number of buffers allocated and not yet disposed."""
        with self._lock:
            return self._live

    @property
    def num_allocations(self) -> int:
        """Total number of buffers ever allocated by this tracker."""
        with self._lock:
            return self._allocations

    def allocate(self, array, name: Optional[str] = None) -> TensorBuffer:
        """Wrap an array in a tracked buffer. The buffer takes ownership of the array."""
        buffer = TensorBuffer(np.asarray(array), self, name=name)
        with self._lock:
            self._live += 1
            self._allocations += 1

        stack = self._scope_stack()
        if stack:
            stack[-1].append(buffer)
        return buffer

    def zeros(self, shape, dtype=np.float32, name: Optional[str] = None) -> TensorBuffer:
        return self.allocate(np.zeros(shape, dtype=dtype), name=name)

    @contextmanager
    def scope(self) -> Iterator[None]:
        """
        Dispose every buffer allocated in this block on exit, unless kept.

        Exits on exception dispose the same set, so a failing block leaves
        no buffers behind.
        """
        stack = self._scope_stack()
        tracked: List[TensorBuffer] = []
        stack.append(tracked)
        try:
            yield
        finally:
            stack.pop()
            for buffer in tracked:
                if not buffer._kept:
                    buffer.dispose()

    def _scope_stack(self) -> List[List[TensorBuffer]]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = []
            self._local.stack = stack
        return stack

    def _release(self, buffer: TensorBuffer) -> bool:
        with self._lock:
            if buffer._disposed:
                return False
            buffer._disposed = True
            self._live -= 1
        logger.debug("Released tensor buffer %s %s", buffer.name, buffer.shape)
        return True


# Shared tracker for callers that do not need their own allocation counts.
default_tracker = TensorTracker()
