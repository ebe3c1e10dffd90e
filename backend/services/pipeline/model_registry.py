"""Lazy-loading model registry for the three QuAL classifiers.

The three pipelines are built together, once per process, the first time
anything asks for them. Loading is all-or-nothing: if any classifier fails
to build, none are kept and the next call starts over.
"""

import enum
import logging
import threading

from config import settings
from services.pipeline.errors import ModelLoadFailure
from services.pipeline.qual_classifier import (
    ClassifierFactory,
    QualClassifierService,
    transformers_factory,
)

logger = logging.getLogger(__name__)

MODEL_NAMES = ("q1", "q2i", "q3i")


class RegistryState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


def _model_id(name: str) -> str:
    if name == "q1":
        return settings.q1_model
    elif name == "q2i":
        return settings.q2i_model
    elif name == "q3i":
        return settings.q3i_model
    else:
        raise ValueError(f"Unknown model: {name}")


class ModelRegistry:
    """Process-wide holder for the loaded classifier services."""

    def __init__(self, factory: ClassifierFactory = transformers_factory) -> None:
        self.factory = factory
        self.load_count = 0
        self._models: dict[str, QualClassifierService] = {}
        self._state = RegistryState.IDLE
        self._lock = threading.Lock()
        self._generation = 0  # bumped when a load attempt finishes
        self._last_failure: ModelLoadFailure | None = None

    @property
    def state(self) -> RegistryState:
        return self._state

    def _create_model(self, name: str) -> QualClassifierService:
        return QualClassifierService(name, _model_id(name), self.factory)

    def ensure_loaded(self) -> RegistryState:
        """Build all three classifiers on first call; later calls return at once.

        Blocks while another thread is loading, so concurrent first calls
        share a single load. Callers that were waiting on a load that failed
        get that load's ModelLoadFailure; only a call made after the failure
        starts a new attempt.
        """
        if self._state is RegistryState.READY:
            return self._state
        generation = self._generation
        with self._lock:
            if self._state is RegistryState.READY:
                return self._state
            if self._generation != generation and self._last_failure is not None:
                failure = self._last_failure
                raise ModelLoadFailure(failure.model_name, failure.cause) from failure.cause
            self._state = RegistryState.LOADING
            self.load_count += 1
            built: dict[str, QualClassifierService] = {}
            try:
                for name in MODEL_NAMES:
                    try:
                        svc = self._create_model(name)
                        svc.ensure_loaded()
                    except Exception as e:
                        self._state = RegistryState.IDLE
                        self._last_failure = ModelLoadFailure(name, e)
                        logger.error("Model load failed for %s: %s", name, e)
                        raise self._last_failure from e
                    built[name] = svc
                self._models = built
                self._last_failure = None
                self._state = RegistryState.READY
                logger.info("All QuAL classifiers loaded (%s)", ", ".join(MODEL_NAMES))
            finally:
                self._generation += 1
        return self._state

    def get(self, name: str) -> QualClassifierService:
        if name not in MODEL_NAMES:
            raise ValueError(f"Unknown model: {name}")
        self.ensure_loaded()
        return self._models[name]


_registry = ModelRegistry()


def get_registry() -> ModelRegistry:
    return _registry


def ensure_loaded() -> RegistryState:
    return _registry.ensure_loaded()


def is_ready() -> bool:
    return _registry.state is RegistryState.READY


def get_model(name: str) -> QualClassifierService:
    """Get a classifier service by name, loading the registry on first access."""
    return _registry.get(name)


def preload() -> None:
    """Pre-load the classifiers (e.g. at startup)."""
    _registry.ensure_loaded()


def set_classifier_factory(factory: ClassifierFactory | None) -> None:
    """Swap how classifier pipelines are built. ``None`` restores transformers."""
    _registry.factory = factory or transformers_factory


def clear() -> None:
    """Unload all models and restore the default factory. Useful for testing."""
    global _registry
    _registry = ModelRegistry()
