"""
Status domain and transition table tests.

Covers:
    1. Every enum member is a key of its table
    2. Terminal statuses allow no outgoing move
    3. No status returns to ``pending``
    4. Cross-domain comparisons are always rejected
    5. parse_status coercion
"""

import pytest

from rentflow.models.workflow_status import (
    CERTIFICATION_TRANSITIONS,
    MANDATE_TRANSITIONS,
    ROLE_REQUEST_TRANSITIONS,
    CertificationStatus,
    MandateStatus,
    RoleRequestStatus,
    can_transition,
    is_terminal,
    parse_status,
    status_values,
)
from rentflow.services.transitions import sources_for

TABLES = [
    (RoleRequestStatus, ROLE_REQUEST_TRANSITIONS),
    (CertificationStatus, CERTIFICATION_TRANSITIONS),
    (MandateStatus, MANDATE_TRANSITIONS),
]


class TestTransitionTables:

    @pytest.mark.parametrize("enum_cls,table", TABLES)
    def test_table_is_exhaustive(self, enum_cls, table):
        assert set(table) == set(enum_cls)

    @pytest.mark.parametrize("enum_cls,table", TABLES)
    def test_every_edge_is_allowed(self, enum_cls, table):
        for current, targets in table.items():
            for target in targets:
                assert can_transition(current, target)

    @pytest.mark.parametrize("enum_cls,table", TABLES)
    def test_terminal_statuses_have_no_exit(self, enum_cls, table):
        for status in enum_cls:
            if is_terminal(status):
                assert not any(can_transition(status, t) for t in enum_cls)

    @pytest.mark.parametrize("enum_cls", [RoleRequestStatus, CertificationStatus, MandateStatus])
    def test_nothing_returns_to_pending(self, enum_cls):
        assert not any(can_transition(s, enum_cls.PENDING) for s in enum_cls)

    def test_self_transition_is_rejected(self):
        assert not can_transition(CertificationStatus.PENDING, CertificationStatus.PENDING)
        assert not can_transition(MandateStatus.ACTIVE, MandateStatus.ACTIVE)


class TestRoleRequestEdges:

    def test_open_request_can_be_cancelled(self):
        assert can_transition(RoleRequestStatus.PENDING, RoleRequestStatus.CANCELLED)
        assert can_transition(RoleRequestStatus.UNDER_REVIEW, RoleRequestStatus.CANCELLED)

    @pytest.mark.parametrize("status", [
        RoleRequestStatus.APPROVED, RoleRequestStatus.REJECTED, RoleRequestStatus.CANCELLED,
    ])
    def test_decided_requests_are_terminal(self, status):
        assert is_terminal(status)


class TestCertificationEdges:

    def test_approved_only_moves_to_revoked(self):
        assert CERTIFICATION_TRANSITIONS[CertificationStatus.APPROVED] == {CertificationStatus.REVOKED}

    def test_pending_cannot_be_revoked(self):
        assert not can_transition(CertificationStatus.PENDING, CertificationStatus.REVOKED)

    def test_review_sources(self):
        assert set(sources_for(CertificationStatus, CertificationStatus.APPROVED)) == {
            CertificationStatus.PENDING, CertificationStatus.UNDER_REVIEW,
        }


class TestMandateEdges:

    def test_pending_cannot_be_suspended(self):
        assert not can_transition(MandateStatus.PENDING, MandateStatus.SUSPENDED)

    def test_suspended_can_resume(self):
        assert can_transition(MandateStatus.SUSPENDED, MandateStatus.ACTIVE)

    def test_pending_cannot_expire(self):
        assert not can_transition(MandateStatus.PENDING, MandateStatus.EXPIRED)


class TestParseStatus:

    def test_cross_domain_is_rejected(self):
        assert not can_transition(RoleRequestStatus.PENDING, CertificationStatus.UNDER_REVIEW)

    def test_parse_value(self):
        assert parse_status(CertificationStatus, "approved") is CertificationStatus.APPROVED
        assert parse_status(CertificationStatus, " revoked ") is CertificationStatus.REVOKED

    def test_parse_member_passthrough(self):
        assert parse_status(MandateStatus, MandateStatus.ACTIVE) is MandateStatus.ACTIVE

    @pytest.mark.parametrize("raw", ["APPROVED", "maybe", "", None, 3])
    def test_parse_invalid(self, raw):
        assert parse_status(CertificationStatus, raw) is None

    def test_status_values(self):
        assert status_values(RoleRequestStatus) == ["pending", "under_review", "approved", "rejected", "cancelled"]
