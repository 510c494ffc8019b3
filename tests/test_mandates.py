"""
Agency mandate workflow tests.

Covers:
    1. Creation rules (agency account, fees, dates, permissions)
    2. Agency response: accept / refuse, only from ``pending``
    3. Party actions: suspend, resume, terminate, and outsiders
    4. Permission updates (owner only, closed key set)
    5. Derived expiry, expiring-soon window and summary counts
    6. Optional expiry sweep
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from rentflow.models import db
from rentflow.models.alert import Alert
from rentflow.models.mandate import DEFAULT_MANDATE_PERMISSIONS, AgencyMandate
from rentflow.models.workflow_status import MandateStatus, UserType
from rentflow.services import mandate_service as svc
from rentflow.utils.errors import E
from rentflow.utils.messages import translate

from conftest import NOW

TODAY = NOW.date()


def _mandate(owner, agency, status=MandateStatus.ACTIVE, end_date=None, start_date=date(2026, 1, 1)):
    mandate = AgencyMandate(
        owner_id=owner.id,
        agency_id=agency.id,
        status=status,
        commission_rate=8,
        start_date=start_date,
        end_date=end_date,
    )
    db.session.add(mandate)
    db.session.commit()
    return mandate.id


def _alerts_for(user):
    return db.session.execute(
        select(Alert).where(Alert.target_user_id == user.id).order_by(Alert.id)
    ).scalars().all()


@pytest.fixture()
def pending_mandate(owner, agency):
    data, err = svc.create_mandate(owner.id, {"agency_id": agency.id, "commission_rate": 8, "end_date": "2027-03-01"})
    assert err is None, err
    return data["id"]


@pytest.fixture()
def active_mandate(agency, pending_mandate):
    _, err = svc.accept_mandate(pending_mandate, agency.id)
    assert err is None
    return pending_mandate


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateMandate:

    def test_create(self, owner, agency):
        data, err = svc.create_mandate(owner.id, {
            "agency_id": agency.id,
            "mandate_type": "gestion_complete",
            "commission_rate": "7.5",
            "billing_frequency": "trimestriel",
            "end_date": "01/03/2027",
            "permissions": {"can_create_leases": True},
        })
        assert err is None
        assert data["status"] == "pending"
        assert data["commission_rate"] == 7.5
        assert data["start_date"] == TODAY.isoformat()
        assert data["end_date"] == "2027-03-01"
        assert data["permissions"]["can_create_leases"] is True
        assert data["permissions"]["can_view_properties"] is True

    def test_invitation_alert(self, agency, pending_mandate):
        alerts = _alerts_for(agency)
        assert len(alerts) == 1
        assert alerts[0].alert_type == "mandate_invitation"
        assert alerts[0].action_required is True
        assert alerts[0].meta["mandate_id"] == pending_mandate

    def test_fixed_fee_only(self, owner, agency):
        data, err = svc.create_mandate(owner.id, {"agency_id": agency.id, "fixed_fee": 50000})
        assert err is None
        assert data["fixed_fee"] == 50000.0
        assert data["commission_rate"] is None

    @pytest.mark.parametrize("payload,message_key", [
        ({}, "field_required"),
        ({"commission_rate": 150}, "mandate_fee_invalid"),
        ({"commission_rate": -1}, "mandate_fee_invalid"),
        ({"fixed_fee": 0}, "mandate_fee_invalid"),
        ({"commission_rate": "abc"}, "mandate_fee_invalid"),
        ({"commission_rate": None, "fixed_fee": None}, "mandate_fee_invalid"),
        ({"commission_rate": 5, "mandate_type": "colocation"}, "mandate_type_invalid"),
        ({"commission_rate": 5, "billing_frequency": "hebdo"}, "billing_frequency_invalid"),
        ({"commission_rate": 5, "start_date": "2026-06-01", "end_date": "2026-05-01"}, "mandate_dates_invalid"),
        ({"commission_rate": 5, "permissions": {"can_sell_house": True}}, "permission_key_invalid"),
    ])
    def test_validation(self, owner, agency, payload, message_key):
        if message_key != "field_required":
            payload = {"agency_id": agency.id, **payload}
        _, err = svc.create_mandate(owner.id, payload)
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate(message_key, field="agency_id", key="can_sell_house")
        assert db.session.execute(select(AgencyMandate)).first() is None

    def test_self_mandate(self, owner):
        _, err = svc.create_mandate(owner.id, {"agency_id": owner.id, "commission_rate": 5})
        assert err["error"] == translate("mandate_self")

    def test_agency_must_be_an_agency_account(self, owner, tenant):
        _, err = svc.create_mandate(owner.id, {"agency_id": tenant.id, "commission_rate": 5})
        assert err["error"] == translate("mandate_agency_invalid")

    def test_unknown_owner(self, agency):
        _, err = svc.create_mandate("ghost", {"agency_id": agency.id, "commission_rate": 5})
        assert err["code"] == E.NOT_FOUND


# ═════════════════════════════════════════════════════════════════════════════
# Agency response
# ═════════════════════════════════════════════════════════════════════════════


class TestAgencyResponse:

    def test_accept(self, owner, agency, pending_mandate):
        data, err = svc.accept_mandate(pending_mandate, agency.id)
        assert err is None
        assert data["status"] == "active"
        assert data["accepted_at"] is not None
        assert _alerts_for(owner)[-1].alert_type == "mandate_accepted"

    def test_other_agency_cannot_accept(self, make_profile, pending_mandate):
        intruder = make_profile(UserType.AGENCY)
        _, err = svc.accept_mandate(pending_mandate, intruder.id)
        assert err["code"] == E.NOT_FOUND
        assert db.session.get(AgencyMandate, pending_mandate).status == MandateStatus.PENDING

    def test_accept_twice(self, agency, active_mandate):
        _, err = svc.accept_mandate(active_mandate, agency.id)
        assert err["code"] == E.INVALID_TRANSITION

    def test_accept_suspended_is_invalid(self, owner, agency, active_mandate):
        svc.suspend_mandate(active_mandate, owner.id)
        _, err = svc.accept_mandate(active_mandate, agency.id)
        assert err["code"] == E.INVALID_TRANSITION
        assert db.session.get(AgencyMandate, active_mandate).status == MandateStatus.SUSPENDED

    def test_refuse(self, owner, agency, pending_mandate):
        data, err = svc.refuse_mandate(pending_mandate, agency.id)
        assert err is None
        assert data["status"] == "terminated"
        assert data["terminated_by"] == agency.id
        assert data["termination_reason"] == svc.DEFAULT_REFUSAL_REASON
        assert _alerts_for(owner)[-1].alert_type == "mandate_refused"

    def test_refuse_active_is_invalid(self, agency, active_mandate):
        _, err = svc.refuse_mandate(active_mandate, agency.id, reason="Trop tard")
        assert err["code"] == E.INVALID_TRANSITION


# ═════════════════════════════════════════════════════════════════════════════
# Party actions
# ═════════════════════════════════════════════════════════════════════════════


class TestPartyActions:

    def test_suspend_and_resume(self, owner, agency, active_mandate):
        data, err = svc.suspend_mandate(active_mandate, owner.id, reason="Travaux")
        assert err is None
        assert data["status"] == "suspended"
        assert data["notes"] == "Travaux"
        assert _alerts_for(agency)[-1].alert_type == "mandate_status"

        data, err = svc.resume_mandate(active_mandate, agency.id)
        assert err is None
        assert data["status"] == "active"
        assert _alerts_for(owner)[-1].meta["status"] == "active"

    def test_suspend_pending_is_invalid(self, owner, pending_mandate):
        _, err = svc.suspend_mandate(pending_mandate, owner.id)
        assert err["code"] == E.INVALID_TRANSITION

    def test_resume_active_is_invalid(self, owner, active_mandate):
        _, err = svc.resume_mandate(active_mandate, owner.id)
        assert err["code"] == E.INVALID_TRANSITION

    def test_outsider_is_forbidden(self, tenant, active_mandate):
        for call in (
            lambda: svc.suspend_mandate(active_mandate, tenant.id),
            lambda: svc.resume_mandate(active_mandate, tenant.id),
            lambda: svc.terminate_mandate(active_mandate, tenant.id, reason="x"),
            lambda: svc.get_mandate(active_mandate, tenant.id),
        ):
            _, err = call()
            assert err["code"] == E.FORBIDDEN
            assert err["status"] == 403

    def test_terminate_requires_reason(self, owner, active_mandate):
        _, err = svc.terminate_mandate(active_mandate, owner.id)
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate("field_required", field="reason")

    def test_terminate(self, owner, agency, active_mandate):
        data, err = svc.terminate_mandate(active_mandate, agency.id, reason="Fin de collaboration")
        assert err is None
        assert data["status"] == "terminated"
        assert data["terminated_by"] == agency.id
        assert _alerts_for(owner)[-1].meta["status"] == "terminated"

        _, err = svc.terminate_mandate(active_mandate, owner.id, reason="Encore")
        assert err["code"] == E.INVALID_TRANSITION

    def test_owner_can_withdraw_pending_invitation(self, owner, pending_mandate):
        data, err = svc.terminate_mandate(pending_mandate, owner.id, reason="Erreur de saisie")
        assert err is None
        assert data["status"] == "terminated"

    def test_unknown_mandate(self, owner):
        _, err = svc.suspend_mandate("missing", owner.id)
        assert err["code"] == E.NOT_FOUND


class TestPermissions:

    def test_owner_updates_and_merges(self, owner, active_mandate):
        data, err = svc.update_mandate_permissions(active_mandate, owner.id, {"can_view_financials": True})
        assert err is None
        assert data["permissions"]["can_view_financials"] is True
        data, _ = svc.update_mandate_permissions(active_mandate, owner.id, {"can_view_properties": False})
        assert data["permissions"]["can_view_financials"] is True
        assert data["permissions"]["can_view_properties"] is False
        assert set(data["permissions"]) == set(DEFAULT_MANDATE_PERMISSIONS)

    def test_agency_cannot_update(self, agency, active_mandate):
        _, err = svc.update_mandate_permissions(active_mandate, agency.id, {"can_view_financials": True})
        assert err["code"] == E.FORBIDDEN

    def test_unknown_key_rejected(self, owner, active_mandate):
        _, err = svc.update_mandate_permissions(active_mandate, owner.id, {"can_fly": True})
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate("permission_key_invalid", key="can_fly")
        mandate = db.session.get(AgencyMandate, active_mandate)
        assert "can_fly" not in mandate.permissions


# ═════════════════════════════════════════════════════════════════════════════
# Derived expiry & sweep
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def dated_mandates(owner, agency):
    return {
        "soon": _mandate(owner, agency, end_date=TODAY + timedelta(days=10)),
        "overdue": _mandate(owner, agency, end_date=TODAY - timedelta(days=1)),
        "suspended_overdue": _mandate(owner, agency, MandateStatus.SUSPENDED, end_date=TODAY - timedelta(days=3)),
        "pending": _mandate(owner, agency, MandateStatus.PENDING, end_date=TODAY - timedelta(days=3)),
        "open_ended": _mandate(owner, agency),
    }


class TestDerivedExpiry:

    def test_list_for_owner(self, owner, dated_mandates):
        data, err = svc.list_mandates(owner.id, now=NOW)
        assert err is None
        by_id = {m["id"]: m for m in data["items"]}

        soon = by_id[dated_mandates["soon"]]
        assert soon["expiring_soon"] is True
        assert soon["effective_status"] == "active"

        overdue = by_id[dated_mandates["overdue"]]
        assert overdue["status"] == "active"
        assert overdue["effective_status"] == "expired"
        assert overdue["is_expired"] is True
        assert overdue["expiring_soon"] is False

        assert by_id[dated_mandates["pending"]]["effective_status"] == "pending"
        assert by_id[dated_mandates["open_ended"]]["expiring_soon"] is False
        assert {m["role"] for m in data["items"]} == {"owner"}

        summary = data["summary"]
        assert summary["active"] == 2
        assert summary["expired"] == 2
        assert summary["pending"] == 1
        assert summary["expiring_soon"] == 1
        assert summary["total"] == 5
        assert data["as_of"] == TODAY.isoformat()

    def test_list_for_agency(self, agency, dated_mandates):
        data, _ = svc.list_mandates(agency.id, now=NOW)
        assert {m["role"] for m in data["items"]} == {"agency"}

    def test_window_edge(self, owner, agency):
        mandate_id = _mandate(owner, agency, end_date=TODAY + timedelta(days=30))
        data, _ = svc.get_mandate(mandate_id, owner.id, now=NOW)
        assert data["expiring_soon"] is True
        data, _ = svc.get_mandate(mandate_id, owner.id, now=NOW - timedelta(days=1))
        assert data["expiring_soon"] is False

    def test_list_does_not_write(self, owner, dated_mandates):
        svc.list_mandates(owner.id, now=NOW)
        assert db.session.get(AgencyMandate, dated_mandates["overdue"]).status == MandateStatus.ACTIVE


class TestExpirySweep:

    def test_materializes_expired(self, owner, agency, dated_mandates):
        result = svc.expire_overdue_mandates(now=NOW)

        assert result == {"expired": 2, "skipped": 0}
        assert db.session.get(AgencyMandate, dated_mandates["overdue"]).status == MandateStatus.EXPIRED
        assert db.session.get(AgencyMandate, dated_mandates["suspended_overdue"]).status == MandateStatus.EXPIRED
        assert db.session.get(AgencyMandate, dated_mandates["pending"]).status == MandateStatus.PENDING
        assert db.session.get(AgencyMandate, dated_mandates["soon"]).status == MandateStatus.ACTIVE
        assert len(_alerts_for(owner)) == 2
        assert len(_alerts_for(agency)) == 2

    def test_second_run_is_a_no_op(self, dated_mandates):
        svc.expire_overdue_mandates(now=NOW)
        assert svc.expire_overdue_mandates(now=NOW) == {"expired": 0, "skipped": 0}
