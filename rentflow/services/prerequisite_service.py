"""
Role-change prerequisite checks.

Pure reads over the caller's profile. Both functions return a result dict
in every case, never raise: a lookup failure yields ``can_upgrade=False``
with a generic entry, so callers must read the flag rather than rely on
the absence of an error.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from rentflow.models import db
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import UserType
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

# (verification_status key, profile predicate, missing message, recommendation)
_CHECKS = (
    ("email_verified", lambda p: bool(p.is_verified), "req.email_not_verified", "rec.verify_email"),
    ("phone_present", lambda p: bool((p.phone or "").strip()), "req.phone_missing", "rec.complete_profile"),
    ("city_present", lambda p: bool((p.city or "").strip()), "req.city_missing", "rec.complete_profile"),
    ("oneci_verified", lambda p: bool(p.oneci_verified), "req.oneci_not_verified", "rec.verify_identity"),
    ("face_verified", lambda p: bool(p.face_verified), "req.face_not_verified", "rec.verify_face"),
)
TOTAL_STEPS = len(_CHECKS)


def _role_restrictions(profile) -> list[str]:
    if profile.user_type == UserType.OWNER:
        return [translate("req.already_owner")]
    if profile.user_type == UserType.ADMIN:
        return [translate("req.admin_cannot_request")]
    return []


def _blocked(message: str) -> dict:
    return {
        "can_upgrade": False,
        "missing_requirements": [message],
        "completion_percentage": 0,
        "current_step": 1,
        "total_steps": TOTAL_STEPS,
        "verification_status": {},
        "recommendations": [],
    }


def _load_profile(user_id):
    return db.session.get(UserProfile, user_id) if user_id else None


def validate_prerequisites(user_id) -> dict:
    """Readiness of ``user_id`` to request a role change."""
    try:
        profile = _load_profile(user_id)
    except SQLAlchemyError:
        logger.exception("Prerequisite lookup failed", extra={"user_id": user_id})
        db.session.rollback()
        return _blocked(translate("validation_error"))

    if profile is None:
        return _blocked(translate("user_not_found"))

    status = {}
    missing = []
    recommendations = []
    for key, predicate, missing_key, rec_key in _CHECKS:
        ok = predicate(profile)
        status[key] = ok
        if not ok:
            missing.append(translate(missing_key))
            rec = translate(rec_key)
            if rec not in recommendations:
                recommendations.append(rec)

    passed = sum(1 for ok in status.values() if ok)
    status["cnam_verified"] = bool(profile.cnam_verified)

    missing.extend(_role_restrictions(profile))
    can_upgrade = not missing
    if can_upgrade:
        recommendations.append(translate("rec.ready"))

    return {
        "can_upgrade": can_upgrade,
        "missing_requirements": missing,
        "completion_percentage": round(100 * passed / TOTAL_STEPS),
        "current_step": min(passed + 1, TOTAL_STEPS),
        "total_steps": TOTAL_STEPS,
        "verification_status": status,
        "recommendations": recommendations,
    }


def check_user_permissions(user_id) -> dict:
    """Coarse gate shown before the multi-step form is opened."""
    try:
        profile = _load_profile(user_id)
    except SQLAlchemyError:
        logger.exception("Permission lookup failed", extra={"user_id": user_id})
        db.session.rollback()
        return {"can_request": False, "current_role": None, "restrictions": [translate("validation_error")]}

    if profile is None:
        return {"can_request": False, "current_role": None, "restrictions": [translate("user_not_found")]}

    restrictions = []
    if not profile.is_verified:
        restrictions.append(translate("req.email_not_verified"))
    restrictions.extend(_role_restrictions(profile))
    return {
        "can_request": not restrictions,
        "current_role": profile.user_type.value if profile.user_type else None,
        "restrictions": restrictions,
    }
