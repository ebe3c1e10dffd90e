"""Batch runner: scores an ordered list of comments through the three classifiers.

Flow, per comment (strictly one after another):
    progress(i)                       1-based, before the models run
      ├─ q1.predict(comment)
      ├─ q2i.predict(comment)         sequential, or fanned out when
      └─ q3i.predict(comment)         parallel_model_calls is on
                ↓
    combine(RawTriple) -> CompositeScore  appended at position i
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from config import settings
from models.schemas.qual_score import ClassifierOutput, CompositeScore, RawTriple
from services.pipeline import model_registry
from services.pipeline.combiner import combine
from services.pipeline.errors import InferenceFailure, JobCancelled
from services.pipeline.qual_classifier import QualClassifierService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


@dataclass
class BatchResult:
    scores: list[CompositeScore | None] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)


async def _classify(index: int, svc: QualClassifierService, text: str) -> ClassifierOutput:
    try:
        return await asyncio.to_thread(svc.predict, text)
    except Exception as e:
        raise InferenceFailure(index, svc.model_name, e) from e


async def _score_one(
    index: int,
    text: str,
    models: tuple[QualClassifierService, QualClassifierService, QualClassifierService],
    parallel: bool,
) -> CompositeScore:
    q1_svc, q2_svc, q3_svc = models
    if parallel:
        q1, q2i, q3i = await asyncio.gather(
            _classify(index, q1_svc, text),
            _classify(index, q2_svc, text),
            _classify(index, q3_svc, text),
        )
    else:
        q1 = await _classify(index, q1_svc, text)
        q2i = await _classify(index, q2_svc, text)
        q3i = await _classify(index, q3_svc, text)
    return combine(RawTriple(q1=q1, q2i=q2i, q3i=q3i))


async def run(
    comments: Sequence[str],
    *,
    on_progress: ProgressCallback | None = None,
    cancel_token: asyncio.Event | None = None,
    continue_on_error: bool | None = None,
    parallel_models: bool | None = None,
) -> BatchResult:
    """Score every comment in order. Returns results index-aligned with ``comments``.

    An inference failure aborts the whole batch unless ``continue_on_error``
    is set, in which case the failing comment's slot is ``None``. Label
    format violations always abort. The cancel token is checked before each
    comment, never mid-inference.
    """
    if continue_on_error is None:
        continue_on_error = settings.continue_on_error
    if parallel_models is None:
        parallel_models = settings.parallel_model_calls

    result = BatchResult()
    if not comments:
        return result

    await asyncio.to_thread(model_registry.ensure_loaded)
    models = (
        model_registry.get_model("q1"),
        model_registry.get_model("q2i"),
        model_registry.get_model("q3i"),
    )

    logger.info("Started scoring %d comments", len(comments))
    for index, comment in enumerate(comments):
        if cancel_token is not None and cancel_token.is_set():
            logger.info("Scoring cancelled after %d of %d comments", index, len(comments))
            raise JobCancelled(progress_count=index)

        if on_progress is not None:
            await on_progress(index + 1)

        try:
            score = await _score_one(index, comment or "", models, parallel_models)
        except InferenceFailure as e:
            if not continue_on_error:
                raise
            logger.warning("Skipping comment %d: %s", index + 1, e)
            result.scores.append(None)
            result.failed_indices.append(index)
            continue
        result.scores.append(score)

    logger.info("Scoring complete: %d comments, %d failed", len(comments), len(result.failed_indices))
    return result
