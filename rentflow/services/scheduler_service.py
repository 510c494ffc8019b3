"""
Rental Marketplace Workflow Service
Scheduler Service.

Registry and runner for the workflow's periodic jobs. Nothing runs on its
own thread: an external trigger (cron, a platform scheduler, or an admin
through the API) calls ``run_due_jobs`` or ``run_job``, and each run is
recorded on its ``ScheduledJob`` row.

Architecture:
    - register_job: decorator adding a job function to the registry
    - ScheduledJob rows: enabled flag, interval and last-run outcome
    - run_job: execute one job inside the app context and record the run
    - run_due_jobs: execute every enabled job whose interval has elapsed
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import click
from flask import Flask
from sqlalchemy import select

from rentflow.models import as_utc, db
from rentflow.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ── Job registry ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class JobSpec:
    fn: Callable
    interval_minutes: int
    enabled_setting: str | None


_job_registry: dict[str, JobSpec] = {}


def register_job(name: str, interval_minutes: int = 60, enabled_setting: str | None = None):
    """Decorator to register a job function.

    ``enabled_setting`` names an app config key; when given, the job's row is
    created enabled only if that setting is truthy.

    Usage:
        @register_job("review_deadline_sweep", interval_minutes=15)
        def sweep(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = JobSpec(fn, interval_minutes, enabled_setting)
        return fn
    return decorator


def get_registered_jobs() -> dict[str, JobSpec]:
    return dict(_job_registry)


def _job_record(job_name: str) -> ScheduledJob | None:
    return db.session.execute(
        select(ScheduledJob).where(ScheduledJob.job_name == job_name)
    ).scalar_one_or_none()


class SchedulerService:
    """
    Lightweight scheduler service.

    Jobs are executed within the Flask app context and receive the app.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls

        @app.cli.command("run-due-jobs")
        def run_due_jobs_cmd():
            """Run every enabled job whose interval has elapsed."""
            for outcome in cls.run_due_jobs():
                click.echo(f"{outcome['job_name']}: {outcome['status']} ({outcome['duration_ms']} ms)")

        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create missing ``ScheduledJob`` rows for registered jobs."""
        created = []
        for name, spec in _job_registry.items():
            if _job_record(name) is not None:
                continue
            enabled = True
            if spec.enabled_setting and cls._app is not None:
                enabled = bool(cls._app.config.get(spec.enabled_setting, False))
            job = ScheduledJob(
                job_name=name,
                description=(spec.fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                interval_minutes=spec.interval_minutes,
                is_enabled=enabled,
            )
            db.session.add(job)
            created.append(job)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str, force: bool = False) -> dict:
        """
        Execute a single job by name.

        A disabled job is skipped unless ``force`` is set.

        Returns:
            Dict with job_name, status, duration_ms, result and error.
        """
        spec = _job_registry.get(job_name)
        if spec is None:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}
        if cls._app is None:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        cls.ensure_jobs_registered()
        record = _job_record(job_name)
        if record is not None and not record.is_enabled and not force:
            return {"job_name": job_name, "status": "skipped", "duration_ms": 0, "result": None, "error": None}

        start = time.monotonic()
        result = None
        error = None
        status = "success"
        try:
            result = spec.fn(cls._app)
        except Exception as exc:
            db.session.rollback()
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed", job_name, extra={"job_name": job_name})
        duration_ms = int((time.monotonic() - start) * 1000)

        record = _job_record(job_name)
        if record is not None:
            record.record_run(
                status=status,
                duration_ms=duration_ms,
                result=result if isinstance(result, dict) else {"output": str(result)},
                error=error,
            )
            db.session.commit()

        logger.info("Job %s finished: %s in %d ms", job_name, status, duration_ms, extra={"job_name": job_name})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def run_due_jobs(cls, now: datetime | None = None) -> list[dict]:
        """Run enabled jobs that never ran or whose interval has elapsed."""
        now = now or datetime.now(timezone.utc)
        cls.ensure_jobs_registered()
        outcomes = []
        for name in _job_registry:
            record = _job_record(name)
            if record is None or not record.is_enabled:
                continue
            last = as_utc(record.last_run_at)
            if last is not None and now - last < timedelta(minutes=record.interval_minutes or 0):
                continue
            outcomes.append(cls.run_job(name))
        return outcomes

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """All registered jobs with their stored state."""
        cls.ensure_jobs_registered()
        jobs = []
        for name in _job_registry:
            record = _job_record(name)
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": record.to_dict() if record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        record = _job_record(job_name)
        return record.to_dict() if record else None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        if job_name in _job_registry:
            cls.ensure_jobs_registered()
        record = _job_record(job_name)
        if record is None:
            return None
        record.is_enabled = enabled
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "disabled", extra={"job_name": job_name})
        return record.to_dict()
