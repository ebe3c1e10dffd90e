import os
from pydantic_settings import BaseSettings


def _parse_cors_origins() -> list[str] | None:
    """Parse CORS_ORIGINS env var as comma-separated string or JSON list."""
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return None
    if raw.startswith("["):
        import json
        return json.loads(raw)
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings(BaseSettings):
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8100",
    ]
    debug: bool = False

    # Upload limits
    max_upload_size_mb: int = 5
    max_comments: int = 5000

    # QuAL classifier pipelines (Hugging Face model ids)
    classifier_task: str = "text-classification"
    q1_model: str = "kiranbandi/nlp-qual-q1"
    q2i_model: str = "kiranbandi/nlp-qual-q2i"
    q3i_model: str = "kiranbandi/nlp-qual-q3i"
    label_prefix: str = "LABEL_"  # every label emitted by the three models carries it

    # Batch behaviour
    parallel_model_calls: bool = False  # fan out q1/q2i/q3i per comment
    continue_on_error: bool = False  # if True, a failing comment yields a blank row instead of aborting
    preload_models: bool = False  # warm the registry at app startup

    # CSV output
    default_feedback_columns: list[str] = ["Feedback"]
    hash_replacement: str = "-hash-"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "protected_namespaces": ("settings_",)}


_cors_override = _parse_cors_origins()
settings = Settings(**{"cors_origins": _cors_override} if _cors_override else {})
