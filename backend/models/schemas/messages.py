"""Job Channel wire messages exchanged between a host and a scoring worker.

Messages cross the channel as plain JSON-shaped dicts; these models validate
what comes in and serialize what goes out (camelCase keys on the wire).
"""

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from models.schemas.qual_score import CompositeScore


# --- Host -> Worker ---


class HostJob(BaseModel):
    """A scoring job. An empty (or absent) comment list is an init ping."""
    model_config = ConfigDict(extra="ignore")

    comments: list[str] = []

    @property
    def is_init(self) -> bool:
        return not self.comments


class HostCancel(BaseModel):
    action: Literal["cancel"]


HostMessage = Union[HostJob, HostCancel]


def parse_host_message(data: Any) -> HostMessage:
    """Validate a raw host message. Raises pydantic.ValidationError on bad input."""
    if data is None:
        return HostJob()
    if isinstance(data, dict) and "action" in data:
        return HostCancel.model_validate(data)
    return HostJob.model_validate(data)


# --- Worker -> Host ---


class _WorkerMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class WorkerReady(_WorkerMessage):
    status: Literal["ready"] = "ready"


class WorkerProgress(_WorkerMessage):
    status: Literal["progress"] = "progress"
    progress_count: int = Field(alias="progressCount")


class WorkerComplete(_WorkerMessage):
    status: Literal["complete"] = "complete"
    output: list[CompositeScore | None] = []
    failed_indices: list[int] = Field(default=[], alias="failedIndices")


class WorkerCancelled(_WorkerMessage):
    status: Literal["cancelled"] = "cancelled"
    progress_count: int = Field(default=0, alias="progressCount")


class WorkerError(_WorkerMessage):
    status: Literal["error"] = "error"
    error: str  # QualPipelineError.kind, or "invalid_message"
    message: str = ""
    progress_count: int = Field(default=0, alias="progressCount")


WorkerMessage = Union[WorkerReady, WorkerProgress, WorkerComplete, WorkerCancelled, WorkerError]
