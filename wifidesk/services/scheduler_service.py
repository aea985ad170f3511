"""
WifiDesk — Scheduler Service

In-process interval scheduler: a daemon thread wakes every TICK_SECONDS and
runs each enabled job whose interval has elapsed. Job functions register with
@register_job; their schedule, enabled flag and run history live in
ScheduledJob so they survive restarts and can be paused over the API.

    SchedulerService.init_app(app)
    SchedulerService.start()            # background thread
    SchedulerService.run_job("escalation_sweep")   # one run, now
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from flask import Flask

from wifidesk.models import db
from wifidesk.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

TICK_SECONDS = 30
DEFAULT_SCHEDULE = {"minutes": 60, "description": "Every hour"}

JobFn = Callable[[Flask], dict]
ScheduleFn = Callable[[Flask], dict]

_job_registry: dict[str, JobFn] = {}
_job_schedules: dict[str, ScheduleFn] = {}


def register_job(name: str, schedule: ScheduleFn | None = None):
    """Register ``fn(app) -> dict`` under ``name``.

    ``schedule(app)`` gives the schedule config stored when the job's row is
    first created, e.g. ``{"minutes": 5}``.
    """
    def decorator(fn: JobFn) -> JobFn:
        _job_registry[name] = fn
        if schedule is not None:
            _job_schedules[name] = schedule
        return fn
    return decorator


def get_registered_jobs() -> dict[str, JobFn]:
    return dict(_job_registry)


def _job_row(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


class SchedulerService:
    """Class-level scheduler bound to one Flask app."""

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop_event: threading.Event | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler bound to app (%d registered jobs)", len(_job_registry))

    # ── Job rows ─────────────────────────────────────────────────────────

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        if cls._app is None:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                if _job_row(name) is not None:
                    continue
                summary = (fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0]
                job = ScheduledJob(
                    job_name=name,
                    description=summary,
                    schedule_type="interval",
                    schedule_config=_default_schedule(cls._app, name),
                    status="active",
                    is_enabled=True,
                )
                db.session.add(job)
                created.append(job)
            if created:
                db.session.commit()
                logger.info("Registered %d scheduled job(s): %s",
                            len(created), ", ".join(j.job_name for j in created))
        return created

    @classmethod
    def list_jobs(cls) -> list[dict]:
        jobs = []
        for name in _job_registry:
            row = _job_row(name)
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": row.to_dict() if row else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        row = _job_row(job_name)
        return row.to_dict() if row else None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        row = _job_row(job_name)
        if row is None:
            return None
        row.set_enabled(enabled)
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "paused",
                    extra={"job_name": job_name})
        return row.to_dict()

    # ── Execution ────────────────────────────────────────────────────────

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """Run one job now, in its own app context, and record the outcome.

        A failing job is reported, not raised.
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            return {"status": "error", "error": f"Unknown job: {job_name}"}
        if cls._app is None:
            return {"status": "error", "error": "Scheduler not initialized"}

        extra = {"job_name": job_name}
        started = time.monotonic()
        result, error, status = None, None, "success"
        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status, error = "failed", str(exc)
            logger.exception("Job %s failed", job_name, extra=extra)
        duration_ms = int((time.monotonic() - started) * 1000)

        cls._record_run(job_name, status=status, duration_ms=duration_ms,
                        result=result, error=error)
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def _record_run(cls, job_name: str, *, status, duration_ms, result, error) -> None:
        try:
            with cls._app.app_context():
                row = _job_row(job_name)
                if row is None:
                    return
                row.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
        except Exception:
            logger.exception("Could not record run of %s", job_name, extra={"job_name": job_name})

    @classmethod
    def due_jobs(cls, now: datetime | None = None) -> list[str]:
        """Names of registered jobs due at ``now``. Needs an app context."""
        now = now or datetime.now(timezone.utc)
        return [
            name for name in _job_registry
            if (row := _job_row(name)) is not None and row.is_due(now)
        ]

    @classmethod
    def tick(cls, now: datetime | None = None) -> list[dict]:
        """Run every due job once, in registration order."""
        if cls._app is None:
            return []
        with cls._app.app_context():
            names = cls.due_jobs(now)
        return [cls.run_job(name) for name in names]

    # ── Background thread ────────────────────────────────────────────────

    @classmethod
    def start(cls, interval_seconds: int = TICK_SECONDS) -> bool:
        """Start the daemon thread. Returns False if it is already running."""
        if cls._app is None:
            raise RuntimeError("SchedulerService.init_app() must be called first")
        if cls.is_running():
            return False

        cls.ensure_jobs_registered()
        stop_event = cls._stop_event = threading.Event()

        def _loop():
            while not stop_event.is_set():
                try:
                    cls.tick()
                except Exception:
                    logger.exception("Scheduler tick failed")
                stop_event.wait(interval_seconds)

        cls._thread = threading.Thread(target=_loop, name="wifidesk-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler thread started (tick every %ds)", interval_seconds)
        return True

    @classmethod
    def stop(cls, timeout: float = 5.0) -> None:
        if cls._stop_event is not None:
            cls._stop_event.set()
        if cls._thread is not None:
            cls._thread.join(timeout)
        cls._thread = cls._stop_event = None
        logger.info("Scheduler thread stopped")

    @classmethod
    def is_running(cls) -> bool:
        return bool(cls._thread and cls._thread.is_alive())


def _default_schedule(app: Flask, job_name: str) -> dict:
    builder = _job_schedules.get(job_name)
    return builder(app) if builder else dict(DEFAULT_SCHEDULE)
