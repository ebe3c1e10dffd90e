from pydantic import BaseModel

from models.schemas.qual_score import CompositeScore


class HealthResponse(BaseModel):
    status: str = "ok"
    models_loaded: bool = False


class ScoreQuickResponse(BaseModel):
    scores: list[CompositeScore | None] = []  # index-aligned with the request comments
    failed_indices: list[int] = []  # only populated when continue_on_error is on
