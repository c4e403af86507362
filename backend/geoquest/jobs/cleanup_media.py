from __future__ import annotations
import asyncio
from datetime import datetime, timezone as dt_tz
import structlog
from minio.error import S3Error
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from geoquest.db import SessionLocal
from geoquest.models.submission import Submission
from geoquest.services.storage import delete_object

log = structlog.get_logger()

async def purge_expired(session: AsyncSession, now: datetime | None = None, *, delete=delete_object) -> dict:
    """
    Delete photos whose retention has passed and clear the reference on the submission.
    A failed delete leaves the row as is so the next run retries it.
    """
    now = now or datetime.now(dt_tz.utc)
    due = (await session.execute(
        select(Submission)
        .where(Submission.scheduled_delete_at.is_not(None), Submission.scheduled_delete_at <= now)
        .order_by(Submission.scheduled_delete_at)
    )).scalars().all()

    deleted = 0
    errors: list[dict] = []
    for s in due:
        if s.photo_ref:
            try:
                delete(s.photo_ref)
            except (S3Error, OSError) as e:
                errors.append({"submission_id": str(s.id), "key": s.photo_ref, "error": str(e)})
                continue
            deleted += 1
        s.photo_ref = None
        s.scheduled_delete_at = None
    await session.commit()

    log.info("media_cleanup_done", due=len(due), deleted=deleted, failed=len(errors))
    return {"due": len(due), "deleted": deleted, "errors": errors}

async def _run() -> dict:
    async with SessionLocal() as session:
        return await purge_expired(session)

def cleanup_media() -> dict:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run())
