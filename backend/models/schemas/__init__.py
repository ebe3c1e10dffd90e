"""Pydantic contracts for the QuAL scoring pipeline and its Job Channel."""

from models.schemas.qual_score import ClassifierOutput, CompositeScore, LabelScore, RawTriple
from models.schemas.messages import (
    HostCancel,
    HostJob,
    WorkerCancelled,
    WorkerComplete,
    WorkerError,
    WorkerProgress,
    WorkerReady,
)

__all__ = [
    "ClassifierOutput",
    "CompositeScore",
    "LabelScore",
    "RawTriple",
    "HostCancel",
    "HostJob",
    "WorkerCancelled",
    "WorkerComplete",
    "WorkerError",
    "WorkerProgress",
    "WorkerReady",
]
