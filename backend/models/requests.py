from pydantic import BaseModel, Field


class ScoreQuickRequest(BaseModel):
    comments: list[str] = Field(..., description="Narrative feedback comments, scored in order")
