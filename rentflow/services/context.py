"""
Explicit dependencies for workflow services.

Services take a ``WorkflowContext`` instead of reaching for module
globals, so tests can pass an in-memory store, a temporary document
directory, or a frozen clock.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import current_app

from rentflow.services.document_storage import DocumentStorage
from rentflow.services.feature_flags import FeatureFlags

EXTENSION_KEY = "rentflow"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkflowContext:
    storage: DocumentStorage
    flags: FeatureFlags
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        return self.clock()


def get_workflow_context() -> WorkflowContext:
    """Context built from the current app's extensions (see create_app)."""
    ext = current_app.extensions[EXTENSION_KEY]
    return WorkflowContext(storage=ext["storage"], flags=ext["flags"], clock=ext.get("clock", utc_now))
