"""Operations endpoints providing health checks, metrics, and admin jobs."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.maintenance import chat_repair
from app.obs import health
from app.obs import metrics as obs_metrics
from app.settings import settings

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	token = settings.obs_admin_token
	if not token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _resolve_token(x_admin_token, authorization) != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(x_admin_token=x_admin_token, authorization=authorization)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/chat/repair")
async def trigger_chat_repair(
	dry_run: bool = Query(default=True),
	delete_unrecoverable: bool = Query(default=False),
	_: None = Depends(require_admin),
) -> dict[str, object]:
	start = time.perf_counter()
	try:
		counts = await chat_repair.run(dry_run=dry_run, delete_unrecoverable=delete_unrecoverable)
	except Exception as exc:
		obs_metrics.record_job_run(
			chat_repair.JOB_NAME,
			result="error",
			duration_seconds=time.perf_counter() - start,
		)
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail="chat_repair_failed") from exc
	return {"status": "ok", "dry_run": dry_run, **counts}
