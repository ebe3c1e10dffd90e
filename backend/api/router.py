import asyncio
import json
import logging
from pathlib import PurePath

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    Response,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.dependencies import get_job_channel
from config import settings
from models.requests import ScoreQuickRequest
from models.responses import HealthResponse, ScoreQuickResponse
from services import qual_csv
from services.pipeline import model_registry
from services.pipeline.errors import JobFailed, LabelFormatViolation
from services.pipeline.job_channel import JobChannel

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _job_error(e: JobFailed) -> HTTPException:
    if e.kind == LabelFormatViolation.kind:
        return HTTPException(status_code=422, detail=f"Unexpected model output: {e}")
    return HTTPException(status_code=502, detail=f"Scoring failed ({e.kind}): {e}")


def _check_comment_count(n: int) -> None:
    if n > settings.max_comments:
        raise HTTPException(
            status_code=400,
            detail=f"Too many comments. Max per job: {settings.max_comments}",
        )


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", models_loaded=model_registry.is_ready())


@router.post("/score/quick", response_model=ScoreQuickResponse)
@limiter.limit("10/minute")
async def score_quick(
    request: Request,
    body: ScoreQuickRequest,
    channel: JobChannel = Depends(get_job_channel),
):
    _check_comment_count(len(body.comments))
    try:
        result = await channel.submit(body.comments)
    except JobFailed as e:
        raise _job_error(e)
    return ScoreQuickResponse(scores=result.scores, failed_indices=result.failed_indices)


@router.post("/score")
@limiter.limit("10/minute")
async def score_csv(
    request: Request,
    data_file: UploadFile = File(...),
    feedback_columns: str = Form(""),
    channel: JobChannel = Depends(get_job_channel),
):
    # Validate file type
    if not data_file.filename or not data_file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are accepted")

    # Read and validate size
    content = await data_file.read()
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Max size: {settings.max_upload_size_mb}MB",
        )

    try:
        columns, rows = qual_csv.parse_csv(content.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise HTTPException(status_code=400, detail="Could not parse CSV file")

    if not rows:
        raise HTTPException(status_code=400, detail="CSV file has no records")

    try:
        row_indices, comments = qual_csv.extract_comments(
            rows, qual_csv.parse_feedback_columns(feedback_columns), columns
        )
    except qual_csv.ColumnNotFound as e:
        raise HTTPException(status_code=400, detail=str(e))

    _check_comment_count(len(comments))
    logger.info("Scoring %s: %d records, %d with feedback", data_file.filename, len(rows), len(comments))

    try:
        result = await channel.submit(comments)
    except JobFailed as e:
        raise _job_error(e)

    out_columns, out_rows = qual_csv.attach_scores(columns, rows, row_indices, result.scores)
    stem = PurePath(data_file.filename).stem
    return Response(
        content=qual_csv.write_csv(out_columns, out_rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{stem}_qual.csv"'},
    )


@router.websocket("/ws/jobs")
async def job_socket(websocket: WebSocket, channel: JobChannel = Depends(get_job_channel)):
    """Expose the Job Channel over a WebSocket: JSON messages relayed both ways."""
    await websocket.accept()

    async def relay_worker_messages():
        while True:
            await websocket.send_json(await channel.receive())

    async def relay_host_messages():
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                data = text  # the worker answers with invalid_message
            await channel.send(data)

    # Whichever side stops first ends the session; the other is cancelled and awaited.
    tasks = [
        asyncio.create_task(relay_worker_messages()),
        asyncio.create_task(relay_host_messages()),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass

    for task in done:
        exc = task.exception()
        if exc is None or isinstance(exc, WebSocketDisconnect):
            continue
        logger.error("Job socket relay failed: %s", exc)
        raise exc
    logger.info("Job socket disconnected")
