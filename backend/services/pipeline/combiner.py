"""Score combiner: three raw classifier outputs -> composite QuAL score.

    q1 class  + (q2i class == "0") + (q3i class == "0")  -> qual

If q2i reports no suggestion (class "1"), q3i is forced to "1" first: a
suggestion cannot be linked when none was given.
"""

from config import settings
from models.schemas.qual_score import ClassifierOutput, CompositeScore, RawTriple
from services.pipeline.errors import LabelFormatViolation

NO_SIGNAL = "1"
SIGNAL = "0"


def decode_label(label: str, prefix: str | None = None) -> str:
    """Strip the fixed label prefix and return the bare class identifier."""
    prefix = settings.label_prefix if prefix is None else prefix
    if not isinstance(label, str) or not label.startswith(prefix):
        raise LabelFormatViolation(f"Label {label!r} does not start with {prefix!r}")
    class_id = label[len(prefix):]
    if not (class_id.isascii() and class_id.isdigit()):
        raise LabelFormatViolation(f"Label {label!r} has no numeric class after {prefix!r}")
    return class_id


def top_label(output: ClassifierOutput) -> str:
    if not output:
        raise LabelFormatViolation("Classifier returned no labels")
    return output[0].label


def _yes_no(class_id: str) -> str:
    return "Yes" if class_id == SIGNAL else "No"


def combine(raw: RawTriple) -> CompositeScore:
    q1 = decode_label(top_label(raw.q1))
    q2 = decode_label(top_label(raw.q2i))
    q3 = decode_label(top_label(raw.q3i))

    if q2 == NO_SIGNAL:
        q3 = NO_SIGNAL

    qual = int(q1) + (1 if q2 == SIGNAL else 0) + (1 if q3 == SIGNAL else 0)
    return CompositeScore(qual=qual, q1=q1, q2i=_yes_no(q2), q3i=_yes_no(q3))
