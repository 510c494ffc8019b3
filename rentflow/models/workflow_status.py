"""
Closed status domains and their transition tables.

Each workflow entity has exactly one status enum and one transition table.
Services never compare raw strings: inbound values go through ``parse_status``
and every status change goes through ``can_transition``.

    pending ──► under_review ──► approved ──► revoked
       │             │      └──► rejected
       └─────────────┴─────────► expired
"""

from __future__ import annotations

import enum


class RoleRequestStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class CertificationStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    REVOKED = "revoked"


class MandateStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    EXPIRED = "expired"


class LeaseCertificationState(str, enum.Enum):
    """Certification summary mirrored onto the lease row."""

    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    IN_REVIEW = "in_review"
    CERTIFIED = "certified"
    REJECTED = "rejected"


class UserType(str, enum.Enum):
    TENANT = "locataire"
    OWNER = "proprietaire"
    AGENCY = "agence"
    ADMIN = "admin_ansut"


_RS = RoleRequestStatus
ROLE_REQUEST_TRANSITIONS: dict[RoleRequestStatus, frozenset[RoleRequestStatus]] = {
    _RS.PENDING: frozenset({_RS.UNDER_REVIEW, _RS.APPROVED, _RS.REJECTED, _RS.CANCELLED}),
    _RS.UNDER_REVIEW: frozenset({_RS.APPROVED, _RS.REJECTED, _RS.CANCELLED}),
    _RS.APPROVED: frozenset(),
    _RS.REJECTED: frozenset(),
    _RS.CANCELLED: frozenset(),
}

_CS = CertificationStatus
CERTIFICATION_TRANSITIONS: dict[CertificationStatus, frozenset[CertificationStatus]] = {
    _CS.PENDING: frozenset({_CS.UNDER_REVIEW, _CS.APPROVED, _CS.REJECTED, _CS.EXPIRED}),
    _CS.UNDER_REVIEW: frozenset({_CS.APPROVED, _CS.REJECTED, _CS.EXPIRED}),
    _CS.APPROVED: frozenset({_CS.REVOKED}),
    _CS.REJECTED: frozenset(),
    _CS.EXPIRED: frozenset(),
    _CS.REVOKED: frozenset(),
}

_MS = MandateStatus
MANDATE_TRANSITIONS: dict[MandateStatus, frozenset[MandateStatus]] = {
    _MS.PENDING: frozenset({_MS.ACTIVE, _MS.TERMINATED}),
    _MS.ACTIVE: frozenset({_MS.SUSPENDED, _MS.TERMINATED, _MS.EXPIRED}),
    _MS.SUSPENDED: frozenset({_MS.ACTIVE, _MS.TERMINATED, _MS.EXPIRED}),
    _MS.TERMINATED: frozenset(),
    _MS.EXPIRED: frozenset(),
}

_TABLES = {
    RoleRequestStatus: ROLE_REQUEST_TRANSITIONS,
    CertificationStatus: CERTIFICATION_TRANSITIONS,
    MandateStatus: MANDATE_TRANSITIONS,
}

# Every member of every status enum must appear as a key of its table.
for _enum_cls, _table in _TABLES.items():
    if set(_table) != set(_enum_cls):
        raise RuntimeError(f"{_enum_cls.__name__} transition table is not exhaustive")

OPEN_ROLE_REQUEST_STATUSES = frozenset({_RS.PENDING, _RS.UNDER_REVIEW})
OPEN_CERTIFICATION_STATUSES = frozenset({_CS.PENDING, _CS.UNDER_REVIEW})


def can_transition(current: enum.Enum, target: enum.Enum) -> bool:
    """Return True when ``current -> target`` is listed in the domain table."""
    if type(current) is not type(target):
        return False
    table = _TABLES[type(current)]
    return target in table[current]


def is_terminal(status: enum.Enum) -> bool:
    return not _TABLES[type(status)][status]


def parse_status(enum_cls, value):
    """Coerce ``value`` to a member of ``enum_cls`` or return None."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls((value or "").strip())
    except (ValueError, AttributeError):
        return None


def status_values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]
