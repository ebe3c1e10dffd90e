"""Error taxonomy for the scoring pipeline.

Each error carries a ``kind`` string that is reported verbatim in the
``error`` field of a worker error message.
"""


class QualPipelineError(Exception):
    kind: str = "pipeline_error"


class ModelLoadFailure(QualPipelineError):
    """One of the classifier pipelines could not be constructed."""
    kind = "model_load_failure"

    def __init__(self, model_name: str, cause: BaseException | None = None) -> None:
        self.model_name = model_name
        self.cause = cause
        super().__init__(f"Failed to load model {model_name}: {cause}")


class InferenceFailure(QualPipelineError):
    """A classifier call failed for a specific comment."""
    kind = "inference_failure"

    def __init__(self, index: int, model_name: str, cause: BaseException | None = None) -> None:
        self.index = index
        self.model_name = model_name
        self.cause = cause
        super().__init__(f"Model {model_name} failed on comment {index + 1}: {cause}")


class LabelFormatViolation(QualPipelineError):
    """A classifier returned a label outside the expected vocabulary."""
    kind = "label_format_violation"


class ProtocolViolation(QualPipelineError):
    """A message arrived that the worker's current state does not allow."""
    kind = "protocol_violation"


class JobCancelled(QualPipelineError):
    kind = "cancelled"

    def __init__(self, progress_count: int = 0) -> None:
        self.progress_count = progress_count
        super().__init__(f"Job cancelled after {progress_count} comment(s)")


class JobFailed(QualPipelineError):
    """Host-side view of a worker error message."""

    def __init__(self, kind: str, message: str, progress_count: int = 0) -> None:
        self.kind = kind
        self.progress_count = progress_count
        super().__init__(message or kind)
