"""
Atomic status changes shared by the workflow services.

Every transition is one conditional UPDATE: the row changes only if its
status is still one the transition table allows, so two reviewers (or a
reviewer and the deadline sweep) cannot both win. A zero row count is
turned into NotFoundError or TransitionError by ``apply_transition``.
"""

import logging

from sqlalchemy import update

from rentflow.core.exceptions import NotFoundError, TransitionError
from rentflow.models import db
from rentflow.models.workflow_status import can_transition

logger = logging.getLogger(__name__)


def sources_for(enum_cls, target):
    """Statuses of ``enum_cls`` from which ``target`` is reachable."""
    return [s for s in enum_cls if can_transition(s, target)]


def apply_transition(model, entity_id, target, values=None, *, entity, extra_where=(), sources=None):
    """Move ``model`` row ``entity_id`` to ``target`` or raise.

    ``sources`` narrows the statuses the move may start from (default: every
    status the transition table allows). Does not commit. Returns the
    refreshed instance.
    """
    sources = list(sources) if sources is not None else sources_for(type(target), target)
    stmt = (
        update(model)
        .where(model.id == entity_id, model.status.in_(sources), *extra_where)
        .values(status=target, **(values or {}))
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    if result.rowcount == 0:
        current = db.session.get(model, entity_id)
        if current is None:
            raise NotFoundError(model.__name__, entity_id)
        db.session.refresh(current)
        if current.status in sources:
            # Row exists and the move is legal: the extra guard (ownership) failed
            raise NotFoundError(model.__name__, entity_id)
        raise TransitionError(entity, current.status, target)

    obj = db.session.get(model, entity_id)
    db.session.refresh(obj)
    return obj


def log_transition(entity, entity_id, from_status, to_status, actor_id=None, message="Status changed"):
    logger.info(
        "%s %s: %s",
        entity, entity_id, message,
        extra={
            "entity_type": entity,
            "entity_id": entity_id,
            "from_status": getattr(from_status, "value", from_status),
            "to_status": getattr(to_status, "value", to_status),
            "user_id": actor_id,
        },
    )
