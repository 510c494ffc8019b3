"""
Role transformation workflow tests.

Covers:
    1. Submission saga: prerequisite and form gates, uploads, pending row, single admin alert
    2. Duplicate open requests (pre-check and unique-index race)
    3. Upload failure is all-or-nothing, with flag-controlled compensation
    4. Alert failure never undoes a committed submission
    5. Cancel, start review, approve / reject and their invalid transitions
    6. Queries: status, history, admin listing, statistics
"""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from rentflow.core.exceptions import DocumentUploadError
from rentflow.models import as_utc, db
from rentflow.models.alert import Alert
from rentflow.models.role_request import RoleChangeRequest
from rentflow.models.workflow_status import RoleRequestStatus, UserType
from rentflow.services import role_transformation_service as svc
from rentflow.services.alert_service import AlertService
from rentflow.services.context import WorkflowContext
from rentflow.services.document_storage import LocalDocumentStorage
from rentflow.services.feature_flags import FeatureFlags
from rentflow.services.kv_store import MemoryKVStore
from rentflow.utils.errors import E
from rentflow.utils.messages import translate

from conftest import NOW


def _stored_files(storage):
    return sorted(os.listdir(storage.root)) if os.path.isdir(storage.root) else []


def _count(model, *where):
    return db.session.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


def _submit(user, form, documents, **kwargs):
    return svc.submit_transformation_request(user.id, user.user_type.value, form, documents, **kwargs)


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmitRequest:

    def test_success(self, tenant, owner_form, documents, storage):
        data, err = _submit(tenant, owner_form, documents)
        assert err is None

        req = db.session.get(RoleChangeRequest, data["request_id"])
        assert req.status == RoleRequestStatus.PENDING
        assert req.from_role == UserType.TENANT
        assert req.to_role == UserType.OWNER
        assert set(req.documents) == {"id_document", "proof_of_address"}
        assert req.request_data["documents"] == req.documents
        assert req.request_data["submitted_at"]
        assert req.request_data["id_number"] == "CI0012345678"
        assert len(_stored_files(storage)) == 2

    def test_one_admin_alert(self, tenant, owner_form, documents):
        data, _ = _submit(tenant, owner_form, documents)
        alerts = db.session.execute(select(Alert)).scalars().all()
        assert len(alerts) == 1
        assert alerts[0].id == data["alert_id"]
        assert alerts[0].target_role == UserType.ADMIN.value
        assert alerts[0].meta["request_id"] == data["request_id"]
        assert alerts[0].action_required is True

    def test_agency_target(self, tenant, owner_form, documents):
        data, err = _submit(tenant, owner_form, documents, to_role="agence")
        assert err is None
        assert data["request"]["to_role"] == "agence"

    def test_same_role_is_rejected(self, owner, owner_form, documents):
        _, err = _submit(owner, owner_form, documents)
        assert err["code"] == E.VALIDATION_RULE
        assert err["status"] == 422

    def test_unknown_role(self, tenant, owner_form, documents):
        _, err = _submit(tenant, owner_form, documents, to_role="superuser")
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate("invalid_role", role="superuser")

    def test_unknown_user(self, owner_form, documents, storage):
        _, err = svc.submit_transformation_request("ghost", "locataire", owner_form, documents)
        assert err["code"] == E.NOT_FOUND
        assert _stored_files(storage) == []

    def test_closed_by_flag(self, tenant, owner_form, documents, flags):
        flags.set("role_requests_open", False)
        _, err = _submit(tenant, owner_form, documents)
        assert err["code"] == E.FEATURE_DISABLED
        assert err["status"] == 503
        assert _count(RoleChangeRequest) == 0

    def test_unverified_profile_is_refused(self, make_profile, owner_form, documents, storage):
        newcomer = make_profile(is_verified=False, oneci_verified=False, face_verified=False, phone=None, city=None)
        _, err = _submit(newcomer, owner_form, documents)
        assert err["code"] == E.PREREQUISITES_UNMET
        assert err["status"] == 422
        assert err["error"] == translate("prerequisites_unmet")
        assert translate("req.email_not_verified") in err["details"]["missing"]
        assert _count(RoleChangeRequest) == 0
        assert _count(Alert) == 0
        assert _stored_files(storage) == []

    def test_empty_form_is_refused(self, tenant, storage):
        _, err = _submit(tenant, {}, [])
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == err["details"]["errors"][0]
        assert translate("form.terms_required") in err["details"]["errors"]
        assert _count(RoleChangeRequest) == 0
        assert _stored_files(storage) == []

    def test_incomplete_form_uploads_nothing(self, tenant, owner_form, documents, storage):
        owner_form["accept_terms"] = False
        _, err = _submit(tenant, owner_form, documents)
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate("form.terms_required")
        assert _count(RoleChangeRequest) == 0
        assert _stored_files(storage) == []

    def test_repeated_document_type_is_refused(self, tenant, owner_form, documents, storage):
        documents.append({"type": "id_document", "filename": "cni-verso.pdf", "content_type": "application/pdf",
                          "data": b"%PDF-1.4 verso"})
        _, err = _submit(tenant, owner_form, documents)
        assert err["code"] == E.VALIDATION_RULE
        assert err["error"] == translate("document_type_repeated", document_type="id_document")
        assert err["details"]["document_types"] == ["id_document"]
        assert _count(RoleChangeRequest) == 0
        assert _stored_files(storage) == []


class TestDuplicateRequests:

    def test_second_open_request_is_refused(self, tenant, owner_form, documents, storage):
        _submit(tenant, owner_form, documents)
        files_before = _stored_files(storage)

        _, err = _submit(tenant, owner_form, documents)
        assert err["code"] == E.DUPLICATE_REQUEST
        assert err["status"] == 409
        assert err["error"] == translate("duplicate_request")
        assert _count(RoleChangeRequest) == 1
        assert _count(Alert) == 1
        assert _stored_files(storage) == files_before

    def test_unique_index_catches_a_lost_race(self, tenant, owner_form, documents, storage):
        first, _ = _submit(tenant, owner_form, documents)
        files_before = _stored_files(storage)

        # Second submitter passed the pre-check before the first committed
        with patch.object(svc, "has_pending_request", return_value=False):
            _, err = _submit(tenant, owner_form, documents)

        assert err["code"] == E.DUPLICATE_REQUEST
        assert _count(RoleChangeRequest) == 1
        assert _stored_files(storage) == files_before
        assert db.session.get(RoleChangeRequest, first["request_id"]).status == RoleRequestStatus.PENDING

    def test_new_request_after_rejection(self, tenant, admin, owner_form, documents):
        first, _ = _submit(tenant, owner_form, documents)
        svc.review_role_request(first["request_id"], "rejected", admin.id)
        data, err = _submit(tenant, owner_form, documents)
        assert err is None
        assert data["request_id"] != first["request_id"]

    def test_has_pending_request(self, tenant, owner_form, documents):
        assert svc.has_pending_request(tenant.id) is False
        _submit(tenant, owner_form, documents)
        assert svc.has_pending_request(tenant.id, "proprietaire") is True
        assert svc.has_pending_request(tenant.id, UserType.AGENCY) is False
        assert svc.has_pending_request(tenant.id, "nonsense") is False


class TestUploadFailure:

    @pytest.fixture()
    def failing_second_upload(self, storage, monkeypatch):
        original = storage.upload

        def flaky(key, data, content_type, document_type=""):
            if document_type == "proof_of_address":
                raise DocumentUploadError(document_type, "connection reset")
            return original(key, data, content_type, document_type=document_type)

        monkeypatch.setattr(storage, "upload", flaky)

    def test_no_row_and_compensated(self, tenant, owner_form, documents, storage, failing_second_upload):
        _, err = _submit(tenant, owner_form, documents)

        assert err["code"] == E.UPLOAD_FAILED
        assert err["status"] == 502
        assert err["error"] == translate("upload_failed", document_type=translate("document.proof_of_address"))
        assert _count(RoleChangeRequest) == 0
        assert _count(Alert) == 0
        assert _stored_files(storage) == []

    def test_cleanup_disabled_leaves_orphans(self, tenant, owner_form, documents, storage, flags,
                                             failing_second_upload):
        flags.set("cleanup_orphaned_uploads", False)
        _, err = _submit(tenant, owner_form, documents)

        assert err["code"] == E.UPLOAD_FAILED
        assert _count(RoleChangeRequest) == 0
        files = _stored_files(storage)
        assert len(files) == 1
        assert "_id_document_" in files[0]

    def test_documents_without_bytes_are_skipped(self, tenant, owner_form, storage):
        data, err = _submit(tenant, owner_form, [{"type": "id_document", "filename": "cni.pdf", "data": b""}])
        assert err is None
        assert data["request"]["documents"] == {}
        assert _stored_files(storage) == []


class TestAlertFailure:

    def test_submission_survives(self, tenant, owner_form, documents):
        with patch.object(AlertService, "create", side_effect=RuntimeError("alerts table locked")):
            data, err = _submit(tenant, owner_form, documents)

        assert err is None
        assert data["alert_id"] is None
        assert db.session.get(RoleChangeRequest, data["request_id"]).status == RoleRequestStatus.PENDING

    def test_review_survives(self, tenant, admin, owner_form, documents):
        data, _ = _submit(tenant, owner_form, documents)
        with patch.object(AlertService, "create", side_effect=RuntimeError("alerts table locked")):
            reviewed, err = svc.review_role_request(data["request_id"], "approved", admin.id)
        assert err is None
        assert reviewed["status"] == "approved"


# ═════════════════════════════════════════════════════════════════════════════
# Cancel & review
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def pending_request(tenant, owner_form, documents):
    data, err = _submit(tenant, owner_form, documents)
    assert err is None
    return data["request_id"]


class TestCancel:

    def test_owner_cancels(self, tenant, pending_request):
        data, err = svc.cancel_transformation_request(pending_request, tenant.id)
        assert err is None
        assert data["status"] == "cancelled"
        assert svc.has_pending_request(tenant.id) is False

    def test_cancel_twice(self, tenant, pending_request):
        svc.cancel_transformation_request(pending_request, tenant.id)
        _, err = svc.cancel_transformation_request(pending_request, tenant.id)
        assert err["code"] == E.INVALID_TRANSITION
        assert err["status"] == 409
        assert err["error"] == translate("invalid_transition", current="cancelled", target="cancelled")

    def test_other_user_cannot_cancel(self, pending_request, make_profile):
        stranger = make_profile()
        _, err = svc.cancel_transformation_request(pending_request, stranger.id)
        assert err["code"] == E.NOT_FOUND
        assert db.session.get(RoleChangeRequest, pending_request).status == RoleRequestStatus.PENDING

    def test_unknown_request(self, tenant):
        _, err = svc.cancel_transformation_request("missing", tenant.id)
        assert err["code"] == E.NOT_FOUND

    def test_cannot_cancel_approved(self, tenant, admin, pending_request):
        svc.review_role_request(pending_request, "approved", admin.id)
        _, err = svc.cancel_transformation_request(pending_request, tenant.id)
        assert err["code"] == E.INVALID_TRANSITION


class TestReview:

    def test_approve_switches_user_type(self, tenant, admin, pending_request):
        data, err = svc.review_role_request(pending_request, "approved", admin.id, notes="Dossier complet")
        assert err is None
        assert data["status"] == "approved"
        assert data["reviewed_by"] == admin.id
        assert data["admin_notes"] == "Dossier complet"
        assert data["approved_at"] is not None
        db.session.refresh(tenant)
        assert tenant.user_type == UserType.OWNER

    def test_approve_alerts_requester(self, tenant, admin, pending_request):
        svc.review_role_request(pending_request, "approved", admin.id)
        alert = db.session.execute(
            select(Alert).where(Alert.target_user_id == tenant.id)
        ).scalar_one()
        assert alert.alert_type == "role_change_approved"
        assert alert.meta["status"] == "approved"

    def test_reject_keeps_user_type(self, tenant, admin, pending_request):
        data, err = svc.review_role_request(pending_request, "rejected", admin.id, notes="Pièce illisible")
        assert err is None
        assert data["approved_at"] is None
        db.session.refresh(tenant)
        assert tenant.user_type == UserType.TENANT

    def test_second_decision_loses(self, admin, pending_request, make_profile):
        other_admin = make_profile(UserType.ADMIN)
        svc.review_role_request(pending_request, "approved", admin.id)
        _, err = svc.review_role_request(pending_request, "rejected", other_admin.id)
        assert err["code"] == E.INVALID_TRANSITION
        assert db.session.get(RoleChangeRequest, pending_request).status == RoleRequestStatus.APPROVED
        assert _count(Alert, Alert.alert_type.in_(("role_change_approved", "role_change_rejected"))) == 1

    def test_start_review_then_approve(self, admin, pending_request):
        data, err = svc.start_role_request_review(pending_request, admin.id)
        assert err is None
        assert data["status"] == "under_review"
        data, err = svc.review_role_request(pending_request, "approved", admin.id)
        assert err is None

    @pytest.mark.parametrize("status", ["cancelled", "pending", "maybe"])
    def test_invalid_decision(self, admin, pending_request, status):
        _, err = svc.review_role_request(pending_request, status, admin.id)
        assert err["code"] == E.VALIDATION_RULE

    def test_reviewer_required(self, pending_request):
        _, err = svc.review_role_request(pending_request, "approved", None)
        assert err["code"] == E.FORBIDDEN


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


class TestQueries:

    def test_status_includes_people(self, tenant, admin, pending_request):
        svc.review_role_request(pending_request, "approved", admin.id)
        data, err = svc.get_transformation_status(pending_request)
        assert err is None
        assert data["user"]["email"] == tenant.email
        assert data["reviewer"]["id"] == admin.id

    def test_status_unknown(self):
        _, err = svc.get_transformation_status("missing")
        assert err["code"] == E.NOT_FOUND

    def test_history(self, tenant, owner_form, documents, pending_request):
        svc.cancel_transformation_request(pending_request, tenant.id)
        _submit(tenant, owner_form, documents)
        data, err = svc.get_user_transformation_history(tenant.id)
        assert err is None
        assert [r["status"] for r in data] == ["pending", "cancelled"]

    def test_admin_listing_filters(self, pending_request):
        data, _ = svc.list_role_requests("pending")
        assert data["total"] == 1
        data, _ = svc.list_role_requests("approved")
        assert data["total"] == 0
        _, err = svc.list_role_requests("bogus")
        assert err["code"] == E.VALIDATION_RULE

    def test_statistics(self, admin, pending_request, clock):
        svc.review_role_request(pending_request, "approved", admin.id, now=clock.current + timedelta(hours=6))
        data, err = svc.get_transformation_statistics(days=30, now=clock.current + timedelta(days=1))
        assert err is None
        assert data["total"] == 1
        assert data["by_status"]["approved"] == 1
        assert data["approval_rate"] == 100.0
        assert data["avg_processing_hours"] == pytest.approx(6.0, abs=0.1)


class TestExplicitContext:

    def test_services_use_the_given_context(self, tenant, owner_form, documents, tmp_path):
        ctx = WorkflowContext(
            storage=LocalDocumentStorage(str(tmp_path / "ctx-docs")),
            flags=FeatureFlags(MemoryKVStore()),
            clock=lambda: NOW,
        )
        data, err = _submit(tenant, owner_form, documents, ctx=ctx)
        assert err is None
        req = db.session.get(RoleChangeRequest, data["request_id"])
        assert as_utc(req.requested_at) == NOW
        assert len(os.listdir(tmp_path / "ctx-docs")) == 2

    def test_closed_flag_in_context(self, tenant, owner_form, documents, tmp_path):
        ctx = WorkflowContext(
            storage=LocalDocumentStorage(str(tmp_path)),
            flags=FeatureFlags(MemoryKVStore(), defaults={"role_requests_open": False}),
        )
        _, err = _submit(tenant, owner_form, documents, ctx=ctx)
        assert err["code"] == E.FEATURE_DISABLED
        assert err["status"] == 503
