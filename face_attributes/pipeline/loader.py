"""
Model loading lifecycle: Idle -> Loading -> {Ready, Failed}.

The loader builds the age and gender models, warms each one up with a
zero-filled forward pass, and installs them into the registry. Progress is
published as immutable ModelLoadingState snapshots at fixed checkpoints:

    engine ready       20
    age model built    60
    gender model built 90
    warm-up complete  100 (published together with is_loaded=True)

Observers either subscribe for every snapshot or poll `state`. Ready and
Failed are terminal for the lifetime of the loader; reloading means building
a new loader and registry.
"""

import logging
import threading
import time
from typing import Callable, Iterator, List, Optional

from ..common.constants import (
    INPUT_SHAPE,
    PROGRESS_AGE_MODEL,
    PROGRESS_COMPLETE,
    PROGRESS_ENGINE_READY,
    PROGRESS_GENDER_MODEL,
)
from ..common.errors import LoadError, LoadTimeoutError
from ..common.tensors import TensorTracker, default_tracker
from .models import AttributeModel, ModelLoadingState
from .registry import ModelRegistry

logger = logging.getLogger(__name__)

ModelFactory = Callable[[], AttributeModel]
StateCallback = Callable[[ModelLoadingState], None]


def _noop() -> None:
    return None


class ModelLoader:
    """One-shot loader that owns the model lifecycle state."""

    def __init__(
        self,
        registry: ModelRegistry,
        age_factory: ModelFactory,
        gender_factory: ModelFactory,
        engine_ready: Callable[[], None] = _noop,
        tracker: Optional[TensorTracker] = None,
    ):
        """
        Args:
            registry: Registry that receives the models once warmed.
            age_factory: Builds the age model handle.
            gender_factory: Builds the gender model handle.
            engine_ready: Prepares the compute runtime before construction.
            tracker: Tensor tracker for warm-up buffers.
        """
        self.registry = registry
        self.age_factory = age_factory
        self.gender_factory = gender_factory
        self.engine_ready = engine_ready
        self.tracker = tracker or default_tracker

        self._lock = threading.Lock()
        # Held while delivering snapshots so each observer sees them in publish order.
        self._notify_lock = threading.RLock()
        self._state = ModelLoadingState()
        self._started = False
        self._finished = threading.Event()
        self._subscribers: List[StateCallback] = []
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ModelLoadingState:
        """The current snapshot. Snapshots are immutable and safe to share."""
        with self._lock:
            return self._state

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        Register a callback for every published snapshot.

        The callback immediately receives the current snapshot. Returns a
        function that removes the subscription.
        """
        with self._notify_lock:
            with self._lock:
                self._subscribers.append(callback)
                current = self._state
            self._notify(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def start(self, background: bool = True) -> bool:
        """
        Begin loading. Only the first call does anything.

        Args:
            background: Run the load on a daemon thread instead of inline.

        Returns:
            True if this call started the load, False if it was already
            started (or finished).
        """
        with self._lock:
            if self._started:
                return False
            self._started = True
        self._publish(ModelLoadingState(is_loading=True, progress=0))

        if background:
            self._thread = threading.Thread(target=self._run, name="model-loader", daemon=True)
            self._thread.start()
        else:
            self._run()
        return True

    def load(self, timeout: Optional[float] = None) -> ModelLoadingState:
        """Start (if needed) and block until the models are ready."""
        self.start()
        return self.wait(timeout)

    def wait(self, timeout: Optional[float] = None) -> ModelLoadingState:
        """
        Block until a terminal state is reached.

        Raises:
            LoadTimeoutError: If the deadline passes first.
            LoadError: If loading failed.
        """
        if not self._finished.wait(timeout):
            raise LoadTimeoutError(f"Models did not finish loading within {timeout} seconds")

        state = self.state
        if state.error is not None:
            raise LoadError(state.error)
        return state

    def poll(self, interval: float = 0.1) -> Iterator[ModelLoadingState]:
        """Yield snapshots every `interval` seconds, stopping after the first terminal one."""
        while True:
            state = self.state
            yield state
            if state.is_terminal:
                return
            self._finished.wait(interval)

    def dispose(self) -> None:
        """Release the loaded models. The loader stays in its terminal state."""
        self.registry.dispose()

    def _run(self) -> None:
        age_model = None
        gender_model = None
        try:
            self.engine_ready()
            self._advance(PROGRESS_ENGINE_READY)

            age_model = self.age_factory()
            self._advance(PROGRESS_AGE_MODEL)

            gender_model = self.gender_factory()
            self._advance(PROGRESS_GENDER_MODEL)

            self._warm_up(age_model, gender_model)
            self.registry.install(age_model, gender_model)
        except Exception as e:
            logger.error("Model loading error: %s", e, exc_info=True)
            for model in (age_model, gender_model):
                if model is not None:
                    model.dispose()
            message = str(e) or "Failed to load models"
            self._publish(
                ModelLoadingState(is_loading=False, is_loaded=False, error=message, progress=self.state.progress)
            )
        else:
            self._publish(ModelLoadingState(is_loading=False, is_loaded=True, progress=PROGRESS_COMPLETE))
            logger.info("Models loaded and warmed up")

    def _warm_up(self, age_model: AttributeModel, gender_model: AttributeModel) -> None:
        """Run one forward pass per model so lazily allocated resources exist before real requests."""
        with self.tracker.scope():
            dummy_input = self.tracker.zeros(INPUT_SHAPE, name="warmup_input")
            for model in (age_model, gender_model):
                self.tracker.allocate(model.predict(dummy_input.data), name="warmup_output")

    def _advance(self, progress: int) -> None:
        self._publish(ModelLoadingState(is_loading=True, progress=progress))

    def _publish(self, state: ModelLoadingState) -> None:
        with self._notify_lock:
            with self._lock:
                self._state = state
                if state.is_terminal:
                    self._finished.set()
                subscribers = list(self._subscribers)
            logger.debug("Loading state: %s", state)
            for callback in subscribers:
                self._notify(callback, state)

    @staticmethod
    def _notify(callback: StateCallback, state: ModelLoadingState) -> None:
        try:
            callback(state)
        except Exception:
            logger.exception("Loading state observer failed")


class PollingObserver:
    """Samples a loader's state on a fixed interval from its own thread."""

    def __init__(self, loader: ModelLoader, interval: float = 0.1):
        self.loader = loader
        self.interval = interval
        self.samples: List[ModelLoadingState] = []
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "PollingObserver":
        self._thread = threading.Thread(target=self._run, name="loader-poller", daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> List[ModelLoadingState]:
        if self._thread is not None:
            self._thread.join(timeout)
        return self.samples

    def _run(self) -> None:
        for state in self.loader.poll(self.interval):
            self.samples.append(state)


def wait_for_models(loader: ModelLoader, timeout: float, interval: float = 0.1) -> ModelLoadingState:
    """Poll until terminal or the deadline, logging progress changes."""
    deadline = time.monotonic() + timeout
    last_progress = -1
    for state in loader.poll(interval):
        if state.progress != last_progress:
            logger.info("Loading models: %d%%", state.progress)
            last_progress = state.progress
        if state.is_terminal:
            break
        if time.monotonic() > deadline:
            raise LoadTimeoutError(f"Models did not finish loading within {timeout} seconds")

    if state.error is not None:
        raise LoadError(state.error)
    return state
