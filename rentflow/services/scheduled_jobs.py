"""
Rental Marketplace Workflow Service
Scheduled Jobs.

Jobs:
    - review_deadline_sweep: applies the configured auto-action to pending
      certifications and role requests older than the processing deadline
    - mandate_expiry_sweep: stores ``expired`` on mandates past their end
      date; created disabled unless MANDATE_EXPIRY_SWEEP_ENABLED is set
"""

from __future__ import annotations

import logging
from typing import Any

from rentflow.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("review_deadline_sweep", interval_minutes=15)
def review_deadline_sweep(app) -> dict[str, Any]:
    """Auto-decide pending reviews that passed the processing deadline."""
    from rentflow.services.review_queue_service import run_deadline_sweep

    return run_deadline_sweep()


@register_job("mandate_expiry_sweep", interval_minutes=24 * 60, enabled_setting="MANDATE_EXPIRY_SWEEP_ENABLED")
def mandate_expiry_sweep(app) -> dict[str, Any]:
    """Mark active or suspended mandates past their end date as expired."""
    from rentflow.services.mandate_service import expire_overdue_mandates

    return expire_overdue_mandates()
