"""
Process-wide model lifecycle manager.

Loading a vision model is slow and must happen at most once per process.
ModelManager wraps a blocking loader with the lifecycle

    UNINITIALIZED -> INITIALIZING -> READY | FAILED

and guarantees a single in-flight initialization: callers that arrive while
it runs share the same task instead of starting another load. The loader
runs in the default executor so the event loop keeps ticking.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ...core.types import ClassifierInitFailed, ClassifierNotReady

logger = logging.getLogger(__name__)


class ModelState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class ModelManager:
    """Lazy, at-most-once initialization of a single model object."""

    _registry: Dict[str, "ModelManager"] = {}
    _registry_lock = threading.Lock()

    def __init__(self, loader: Callable[[], Any], name: str = "model"):
        self._loader = loader
        self._name = name
        self._state = ModelState.UNINITIALIZED
        self._model = None
        self._error: Optional[BaseException] = None
        self._init_task: Optional[asyncio.Task] = None
        self._load_count = 0

    @classmethod
    def shared(cls, key: str, loader: Callable[[], Any]) -> "ModelManager":
        """Process-wide manager for ``key``; the first loader registered wins."""
        with cls._registry_lock:
            manager = cls._registry.get(key)
            if manager is None:
                manager = cls(loader, name=key)
                cls._registry[key] = manager
            return manager

    @classmethod
    def reset_shared(cls):
        """Close and forget every shared manager (for tests and shutdown)."""
        with cls._registry_lock:
            managers = list(cls._registry.values())
            cls._registry.clear()
        for manager in managers:
            manager.close()

    # ------------------------------------------------------------------

    def get_nowait(self):
        """Return the model if ready, kicking off initialization if needed.

        Raises:
            ClassifierNotReady: initialization is still running
            ClassifierInitFailed: the model failed to load
        """
        if self._state is ModelState.READY:
            return self._model
        if self._state is ModelState.FAILED:
            raise ClassifierInitFailed(f"{self._name}: {self._error}")
        self._start_initialization()
        raise ClassifierNotReady(f"{self._name} is still loading")

    async def wait_ready(self):
        """Await initialization (starting it if needed) and return the model.

        Raises:
            ClassifierInitFailed: the model failed to load
        """
        if self._state is ModelState.READY:
            return self._model
        if self._state is ModelState.FAILED:
            raise ClassifierInitFailed(f"{self._name}: {self._error}")
        task = self._start_initialization()
        # Shield so a cancelled waiter does not abort the shared load.
        await asyncio.shield(task)
        return self.get_nowait()

    def _start_initialization(self) -> asyncio.Task:
        if self._init_task is None or self._init_task.done():
            self._state = ModelState.INITIALIZING
            self._init_task = asyncio.get_running_loop().create_task(
                self._initialize(), name=f"init-{self._name}"
            )
        return self._init_task

    async def _initialize(self):
        logger.info("Loading %s...", self._name)
        loop = asyncio.get_running_loop()
        try:
            model = await loop.run_in_executor(None, self._loader)
        except Exception as e:
            self._error = e
            self._state = ModelState.FAILED
            logger.error("Failed to load %s: %s", self._name, e)
            return
        self._load_count += 1
        self._model = model
        self._state = ModelState.READY
        logger.info("%s loaded successfully", self._name)

    def retry(self):
        """Allow a failed model to be loaded again on the next request."""
        if self._state is ModelState.FAILED:
            logger.info("Retrying initialization of %s", self._name)
            self._state = ModelState.UNINITIALIZED
            self._error = None
            self._init_task = None

    def close(self):
        """Release the model (calls its close() if it has one)."""
        model, self._model = self._model, None
        if model is not None and hasattr(model, "close"):
            try:
                model.close()
            except Exception as e:
                logger.warning("Error closing %s: %s", self._name, e)
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None
        self._state = ModelState.UNINITIALIZED

    # ------------------------------------------------------------------

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ModelState.READY

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def load_count(self) -> int:
        return self._load_count

    @property
    def name(self) -> str:
        return self._name
