"""Shared test configuration, pytest markers and fake classifiers."""

import threading

import pytest

from config import settings
from services.pipeline import model_registry


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: loads real QuAL models from the Hugging Face Hub (slow)"
    )


class FakeClassifiers:
    """Stand-in classifier factory.

    ``labels`` maps a comment to its (q1, q2i, q3i) labels; anything else
    gets ``default``. ``fail_load`` names a model id whose construction
    raises, ``fail_on`` maps a comment to the model id that raises on it,
    and ``gates`` maps a comment to a threading.Event its calls wait on.
    """

    def __init__(self, default=("LABEL_1", "LABEL_0", "LABEL_0")):
        self.default = default
        self.labels: dict[str, tuple[str, str, str]] = {}
        self.fail_load: str | None = None
        self.fail_on: dict[str, str] = {}
        self.gates: dict[str, threading.Event] = {}
        self.built: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _position(self, model_id: str) -> int:
        return [settings.q1_model, settings.q2i_model, settings.q3i_model].index(model_id)

    def __call__(self, model_id: str):
        if model_id == self.fail_load:
            raise OSError(f"Could not fetch {model_id}")
        self.built.append(model_id)
        position = self._position(model_id)

        def classify(texts):
            text = texts[0]
            with self._lock:
                self.calls.append((model_id, text))
            gate = self.gates.get(text)
            if gate is not None:
                gate.wait(timeout=5)
            if self.fail_on.get(text) == model_id:
                raise RuntimeError("inference exploded")
            label = self.labels.get(text, self.default)[position]
            return [{"label": label, "score": 0.93}]

        return classify


@pytest.fixture(autouse=True)
def fake_classifiers(request):
    """Install fake classifiers in a fresh registry for every test."""
    model_registry.clear()
    fake = FakeClassifiers()
    if request.node.get_closest_marker("integration") is None:
        model_registry.set_classifier_factory(fake)
    yield fake
    model_registry.clear()
