"""
Prerequisite and permission gate tests.

Covers:
    1. validate_prerequisites on a ready account
    2. Missing verification items, completion percentage and recommendations
    3. Role restrictions (already owner, admin)
    4. Unknown user and lookup failure never raise
    5. check_user_permissions
"""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from rentflow.models.workflow_status import UserType
from rentflow.services import prerequisite_service
from rentflow.services.prerequisite_service import (
    TOTAL_STEPS,
    check_user_permissions,
    validate_prerequisites,
)
from rentflow.utils.messages import translate


class TestValidatePrerequisites:

    def test_ready_tenant(self, tenant):
        result = validate_prerequisites(tenant.id)
        assert result["can_upgrade"] is True
        assert result["missing_requirements"] == []
        assert result["completion_percentage"] == 100
        assert result["current_step"] == TOTAL_STEPS
        assert result["recommendations"] == [translate("rec.ready")]
        assert result["verification_status"]["cnam_verified"] is False

    def test_missing_items_are_listed(self, make_profile):
        profile = make_profile(is_verified=False, face_verified=False, phone="  ")
        result = validate_prerequisites(profile.id)

        assert result["can_upgrade"] is False
        assert translate("req.email_not_verified") in result["missing_requirements"]
        assert translate("req.phone_missing") in result["missing_requirements"]
        assert translate("req.face_not_verified") in result["missing_requirements"]
        assert result["completion_percentage"] == 40
        assert result["current_step"] == 3
        assert result["verification_status"]["email_verified"] is False
        assert result["verification_status"]["city_present"] is True

    def test_recommendations_are_not_repeated(self, make_profile):
        profile = make_profile(phone=None, city=None)
        result = validate_prerequisites(profile.id)
        assert result["recommendations"].count(translate("rec.complete_profile")) == 1

    def test_owner_is_blocked(self, owner):
        result = validate_prerequisites(owner.id)
        assert result["can_upgrade"] is False
        assert result["missing_requirements"] == [translate("req.already_owner")]
        assert result["completion_percentage"] == 100

    def test_admin_is_blocked(self, make_profile):
        profile = make_profile(UserType.ADMIN)
        assert validate_prerequisites(profile.id)["missing_requirements"] == [translate("req.admin_cannot_request")]

    def test_unknown_user(self):
        result = validate_prerequisites("no-such-user")
        assert result["can_upgrade"] is False
        assert result["missing_requirements"] == [translate("user_not_found")]
        assert result["completion_percentage"] == 0

    def test_lookup_failure_returns_generic_entry(self, tenant):
        with patch.object(prerequisite_service, "_load_profile",
                          side_effect=OperationalError("SELECT", {}, Exception("db down"))):
            result = validate_prerequisites(tenant.id)
        assert result["can_upgrade"] is False
        assert result["missing_requirements"] == [translate("validation_error")]


class TestCheckUserPermissions:

    def test_verified_tenant_can_request(self, tenant):
        result = check_user_permissions(tenant.id)
        assert result == {"can_request": True, "current_role": "locataire", "restrictions": []}

    def test_unverified_email_is_a_restriction(self, make_profile):
        profile = make_profile(is_verified=False)
        result = check_user_permissions(profile.id)
        assert result["can_request"] is False
        assert result["restrictions"] == [translate("req.email_not_verified")]

    def test_owner_cannot_request(self, owner):
        result = check_user_permissions(owner.id)
        assert result["can_request"] is False
        assert result["current_role"] == "proprietaire"

    def test_unknown_user(self):
        result = check_user_permissions(None)
        assert result["can_request"] is False
        assert result["current_role"] is None
