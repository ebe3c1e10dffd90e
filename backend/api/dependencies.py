"""Shared dependencies for API routes."""

from typing import AsyncIterator

from services.pipeline.job_channel import JobChannel


async def get_job_channel() -> AsyncIterator[JobChannel]:
    """One worker per request/connection; models are shared process-wide."""
    async with JobChannel() as channel:
        yield channel
