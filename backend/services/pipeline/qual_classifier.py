"""QuAL text classifiers (q1, q2i, q3i).

Each wraps one Hugging Face text-classification pipeline:
    q1   evidence of the observed behaviour  -> LABEL_<n>
    q2i  suggestion for improvement given    -> LABEL_0 (yes) / LABEL_1 (no)
    q3i  suggestion linked to the behaviour  -> LABEL_0 (yes) / LABEL_1 (no)
"""

import logging
from typing import Any, Callable

from models.schemas.qual_score import ClassifierOutput, LabelScore

logger = logging.getLogger(__name__)

# model id -> callable(text_or_texts) returning pipeline-style dicts
ClassifierFactory = Callable[[str], Callable[..., Any]]


def transformers_factory(model_id: str) -> Callable[..., Any]:
    """Build a transformers text-classification pipeline for ``model_id``."""
    from transformers import pipeline

    from config import settings

    return pipeline(settings.classifier_task, model=model_id)


class QualClassifierService:
    """One named classifier. Built and loaded by model_registry, then read-only."""

    def __init__(self, model_name: str, model_id: str, factory: ClassifierFactory) -> None:
        self.model_name = model_name
        self.model_id = model_id
        self._factory = factory
        self._pipeline = None

    @property
    def is_loaded(self) -> bool:
        return self._pipeline is not None

    def ensure_loaded(self) -> None:
        """Fetch and build the pipeline if not already built."""
        if self._pipeline is None:
            logger.info("Loading model: %s (%s)", self.model_name, self.model_id)
            self._pipeline = self._factory(self.model_id)
            logger.info("Model loaded: %s", self.model_name)

    def predict(self, text: str) -> ClassifierOutput:
        if self._pipeline is None:
            raise RuntimeError(f"Classifier {self.model_name} used before loading")
        return _to_ranked(self._pipeline([text]))


def _to_ranked(raw: Any) -> ClassifierOutput:
    """Normalise a pipeline result for one input into a ranked label list.

    A batched call returns one entry per input; with ``top_k`` set that
    entry is itself a list of label dicts.
    """
    if isinstance(raw, list) and raw and isinstance(raw[0], list):
        raw = raw[0]
    if isinstance(raw, dict):
        raw = [raw]
    ranked = [LabelScore(label=str(r["label"]), score=float(r.get("score", 0.0))) for r in raw or []]
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked
