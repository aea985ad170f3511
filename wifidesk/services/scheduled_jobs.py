"""
WifiDesk — Scheduled Jobs

Concrete job implementations that run on a schedule.

Jobs:
    - escalation_sweep: Escalates requests stuck in pending / in-progress
"""

from __future__ import annotations

import logging
from typing import Any

from wifidesk.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


def _sweep_schedule(app) -> dict:
    minutes = app.config.get("ESCALATION_SWEEP_INTERVAL_MINUTES", 5)
    return {"minutes": minutes, "description": f"Every {minutes} minutes"}


@register_job("escalation_sweep", schedule=_sweep_schedule)
def escalation_sweep(app) -> dict[str, Any]:
    """Escalate requests that breached their pending / in-progress threshold."""
    from wifidesk.services.escalation import run_sweep

    result = run_sweep()
    logger.info("Escalation sweep job: %s", result["message"],
                extra={"job_name": "escalation_sweep"})
    return {key: value for key, value in result.items() if key != "outcomes"}
