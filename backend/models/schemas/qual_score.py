"""Per-comment QuAL scoring contracts: raw classifier outputs and the composite score."""

from typing import Literal, NamedTuple

from pydantic import BaseModel


class LabelScore(BaseModel):
    """One ranked entry of a text-classification pipeline output."""
    label: str  # e.g. "LABEL_0"
    score: float = 0.0


# Ranked highest-confidence first; only the top entry is consulted.
ClassifierOutput = list[LabelScore]


class RawTriple(NamedTuple):
    """The three classifier outputs produced for a single comment."""
    q1: ClassifierOutput
    q2i: ClassifierOutput
    q3i: ClassifierOutput


class CompositeScore(BaseModel):
    """Composite QuAL score for one comment.

    qual is the sum of the q1 class plus one for each of q2i/q3i that
    resolved to class "0" (after the q2i -> q3i override).
    """
    qual: int = 0
    q1: str = "0"  # bare q1 class identifier
    q2i: Literal["Yes", "No"] = "No"  # suggestion given
    q3i: Literal["Yes", "No"] = "No"  # suggestion linked to the behaviour
