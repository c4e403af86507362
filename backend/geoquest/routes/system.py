from __future__ import annotations
import hmac
from datetime import datetime, timezone
from fastapi import APIRouter, Header, HTTPException, Request
from redis import Redis
from rq import Queue
import structlog
from geoquest.config import settings

router = APIRouter()
log = structlog.get_logger()

def get_queue() -> Queue:
    return Queue("default", connection=Redis.from_url(settings.redis_url))

@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "build": "docker",
    }

@router.post("/system/cleanup-media", status_code=202)
async def cleanup_media(x_cron_secret: str | None = Header(None)):
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Invalid cron secret")
    # imported here so the worker module is only loaded when needed
    from geoquest.jobs.cleanup_media import cleanup_media as job
    rq_job = get_queue().enqueue(job)
    log.info("media_cleanup_enqueued", job_id=rq_job.id)
    return {"enqueued": True, "job_id": rq_job.id}
