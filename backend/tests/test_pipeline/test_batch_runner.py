"""Tests for the sequential batch runner."""

import asyncio

import pytest

from config import settings
from models.schemas.qual_score import CompositeScore
from services.pipeline import batch_runner
from services.pipeline.errors import InferenceFailure, JobCancelled, LabelFormatViolation


COMMENTS = [
    "Great job, very responsive",
    "Consider reviewing the guidelines before the next consult",
    "Good",
    "Read about fluid management; your orders today were off by a litre",
]


def _label_comments(fake):
    fake.labels = {
        COMMENTS[0]: ("LABEL_1", "LABEL_0", "LABEL_0"),
        COMMENTS[1]: ("LABEL_0", "LABEL_0", "LABEL_1"),
        COMMENTS[2]: ("LABEL_0", "LABEL_1", "LABEL_0"),
        COMMENTS[3]: ("LABEL_1", "LABEL_0", "LABEL_1"),
    }


EXPECTED = [
    CompositeScore(qual=3, q1="1", q2i="Yes", q3i="Yes"),
    CompositeScore(qual=1, q1="0", q2i="Yes", q3i="No"),
    CompositeScore(qual=0, q1="0", q2i="No", q3i="No"),
    CompositeScore(qual=2, q1="1", q2i="Yes", q3i="No"),
]


class TestRun:
    @pytest.mark.asyncio
    async def test_scores_in_input_order(self, fake_classifiers):
        _label_comments(fake_classifiers)
        result = await batch_runner.run(COMMENTS)
        assert result.scores == EXPECTED
        assert result.failed_indices == []

    @pytest.mark.asyncio
    async def test_parallel_model_calls_keep_order(self, fake_classifiers):
        _label_comments(fake_classifiers)
        result = await batch_runner.run(COMMENTS, parallel_models=True)
        assert result.scores == EXPECTED

    @pytest.mark.asyncio
    async def test_models_called_sequentially_per_comment(self, fake_classifiers):
        await batch_runner.run(COMMENTS[:2], parallel_models=False)
        assert fake_classifiers.calls == [
            (settings.q1_model, COMMENTS[0]),
            (settings.q2i_model, COMMENTS[0]),
            (settings.q3i_model, COMMENTS[0]),
            (settings.q1_model, COMMENTS[1]),
            (settings.q2i_model, COMMENTS[1]),
            (settings.q3i_model, COMMENTS[1]),
        ]

    @pytest.mark.asyncio
    async def test_progress_is_1_to_n_and_precedes_scoring(self, fake_classifiers):
        seen = []

        async def on_progress(count):
            # calls already made when this comment's progress is reported
            seen.append((count, len(fake_classifiers.calls)))

        await batch_runner.run(COMMENTS, on_progress=on_progress)
        assert [c for c, _ in seen] == [1, 2, 3, 4]
        assert [calls for _, calls in seen] == [0, 3, 6, 9]

    @pytest.mark.asyncio
    async def test_empty_job_does_nothing(self, fake_classifiers):
        seen = []

        async def on_progress(count):
            seen.append(count)

        result = await batch_runner.run([], on_progress=on_progress)
        assert result.scores == []
        assert seen == []
        assert fake_classifiers.calls == []


class TestFailures:
    @pytest.mark.asyncio
    async def test_inference_failure_aborts_batch(self, fake_classifiers):
        fake_classifiers.fail_on = {COMMENTS[1]: settings.q2i_model}
        seen = []

        async def on_progress(count):
            seen.append(count)

        with pytest.raises(InferenceFailure) as exc_info:
            await batch_runner.run(COMMENTS, on_progress=on_progress, continue_on_error=False)

        assert exc_info.value.index == 1
        assert exc_info.value.model_name == "q2i"
        assert seen == [1, 2]
        assert not any(text == COMMENTS[2] for _, text in fake_classifiers.calls)

    @pytest.mark.asyncio
    async def test_continue_on_error_leaves_gap(self, fake_classifiers):
        _label_comments(fake_classifiers)
        fake_classifiers.fail_on = {COMMENTS[1]: settings.q1_model}

        result = await batch_runner.run(COMMENTS, continue_on_error=True)

        assert result.failed_indices == [1]
        assert result.scores[1] is None
        assert result.scores[0] == EXPECTED[0]
        assert result.scores[2:] == EXPECTED[2:]

    @pytest.mark.asyncio
    async def test_label_violation_always_aborts(self, fake_classifiers):
        fake_classifiers.labels = {COMMENTS[0]: ("LABEL_1", "SUGGESTION", "LABEL_0")}
        with pytest.raises(LabelFormatViolation):
            await batch_runner.run(COMMENTS, continue_on_error=True)

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, fake_classifiers):
        token = asyncio.Event()
        token.set()
        with pytest.raises(JobCancelled) as exc_info:
            await batch_runner.run(COMMENTS, cancel_token=token)
        assert exc_info.value.progress_count == 0
        assert fake_classifiers.calls == []

    @pytest.mark.asyncio
    async def test_cancel_at_comment_boundary(self, fake_classifiers):
        token = asyncio.Event()

        async def on_progress(count):
            if count == 2:
                token.set()

        with pytest.raises(JobCancelled) as exc_info:
            await batch_runner.run(COMMENTS, on_progress=on_progress, cancel_token=token)

        # comment 2 is not interrupted mid-inference
        assert exc_info.value.progress_count == 2
        assert len(fake_classifiers.calls) == 6
