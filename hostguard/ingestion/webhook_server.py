"""HTTP ingestion for alert summaries pushed by external monitors."""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, HTTPException, Request

from hostguard.models.outputs import AlertSummaryPayload


logger = structlog.get_logger()

router = APIRouter()


@router.post("/alerts")
async def receive_alert_summary(payload: AlertSummaryPayload, request: Request) -> Dict[str, Any]:
    """
    Run one pipeline cycle for a pushed alert summary.

    Returns 409 when another cycle holds the run lock, so the sender
    can retry later.
    """
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    if runtime.coordinator.shutting_down:
        raise HTTPException(status_code=503, detail="Shutting down")

    summary = payload.to_summary()
    logger.info(
        "Received alert summary",
        hostname=summary.hostname,
        issue_count=summary.issue_count,
        max_severity=summary.max_severity.value,
    )

    result = await runtime.webhook.submit(summary)
    if result is None:
        raise HTTPException(status_code=409, detail="Another cycle is running")
    return {"status": "processed", "result": result.to_dict()}
