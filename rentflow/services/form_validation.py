"""
Owner-upgrade form validation.

The role-change form has four steps; each can be validated on its own as
the user advances, and ``validate_complete_submission`` re-runs all of them
plus the account checks right before submission.

    1  personal info   full_name, phone, address, city
    2  owner type      owner_type (+ agency_name / agency_license)
    3  documents       id_document, proof_of_address, professional_card?
    4  KYC             id_number, bank_account, accept_terms

Document fields carry upload metadata, not bytes:
``{"filename": str, "content_type": str, "size": int}``.
"""

from __future__ import annotations

import logging
import re

from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from rentflow.models import db
from rentflow.models.profile import UserProfile
from rentflow.models.role_request import RoleChangeRequest
from rentflow.models.workflow_status import OPEN_ROLE_REQUEST_STATUSES, UserType
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

TOTAL_FORM_STEPS = 4

OWNER_TYPES = ("particulier", "agence", "professionnel")

DOCUMENT_FIELDS = (
    "id_document",
    "proof_of_address",
    "professional_card",
)
REQUIRED_DOCUMENTS = ("id_document", "proof_of_address")

MAX_FILENAME_LENGTH = 255
LOW_QUALITY_IMAGE_BYTES = 100 * 1024
_DEFAULT_MAX_BYTES = 10 * 1024 * 1024
_DEFAULT_ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp", "application/pdf")

_PHONE_RE = re.compile(r"^(\+?[0-9]{1,4}[\s-]?)?[0-9]{8,}$")
_ID_NUMBER_RE = re.compile(r"^[A-Za-z0-9]{6,20}$")
_BANK_ACCOUNT_RE = re.compile(r"^[A-Za-z0-9\s]{15,34}$")
_WHITESPACE_RE = re.compile(r"\s+")

IVORIAN_CITIES = frozenset(c.casefold() for c in (
    "Abidjan", "Bouaké", "Daloa", "Korhogo", "Yamoussoukro", "San-Pedro", "Divo",
    "Gagnoa", "Man", "Issia", "Soubré", "Agboville", "Séguéla", "Bondoukou", "Bouna",
    "Odienné", "Danané", "Toumodi", "Ferkessédougou", "Boundiali", "Tingréla",
    "Toulépleu", "Mankono", "Katiola", "Vavoua", "Oumé", "Sassandra", "Lakota",
    "Dabou", "Bingerville", "Anyama", "Grand-Bassam", "Jacqueville", "Tiassalé",
    "Azaguié", "Sakassou", "Bocanda", "Dimbokro", "Béoumi", "M'Bahiakro",
    "Tiébissou", "Taabo", "Yakassé-Attobrou", "Alépé", "Adzopé", "Akoupé", "Afféry",
    "Aboisso", "Agnibilékrou", "Arrah", "Bettié", "Bongouanou", "Bouaflé",
    "Dabakala", "Diabo", "Dianra",
))


def _limits():
    if has_app_context():
        cfg = current_app.config
        return (
            cfg.get("DOCUMENT_MAX_BYTES", _DEFAULT_MAX_BYTES),
            tuple(cfg.get("DOCUMENT_ALLOWED_TYPES", _DEFAULT_ALLOWED_TYPES)),
        )
    return _DEFAULT_MAX_BYTES, _DEFAULT_ALLOWED_TYPES


def _text(form, key) -> str:
    value = form.get(key)
    return value.strip() if isinstance(value, str) else ""


def document_label(document_type: str) -> str:
    return translate(f"document.{document_type}")


def is_ivorian_city(city: str) -> bool:
    return (city or "").strip().casefold() in IVORIAN_CITIES


# ── Steps ────────────────────────────────────────────────────────────────────


def _personal_info(form, errors, warnings):
    full_name = _text(form, "full_name")
    if not full_name:
        errors.append(translate("field_required", field="full_name"))
    elif not 3 <= len(full_name) <= 100:
        errors.append(translate("form.full_name_length"))

    phone = _text(form, "phone")
    if not phone:
        errors.append(translate("field_required", field="phone"))
    elif not _PHONE_RE.match(_WHITESPACE_RE.sub("", phone)):
        errors.append(translate("form.phone_invalid"))

    address = _text(form, "address")
    if not address:
        errors.append(translate("field_required", field="address"))
    elif len(address) < 10:
        errors.append(translate("form.address_short"))

    city = _text(form, "city")
    if not city:
        errors.append(translate("field_required", field="city"))
    elif not is_ivorian_city(city):
        warnings.append(translate("form.city_unknown"))


def _owner_type(form, errors, warnings):
    owner_type = _text(form, "owner_type")
    if not owner_type:
        errors.append(translate("field_required", field="owner_type"))
        return
    if owner_type not in OWNER_TYPES:
        errors.append(translate("form.owner_type_invalid"))

    if owner_type == "agence":
        agency_name = _text(form, "agency_name")
        if not agency_name:
            errors.append(translate("field_required", field="agency_name"))
        elif len(agency_name) < 3:
            errors.append(translate("form.agency_name_short"))

        license_no = _text(form, "agency_license")
        if not license_no:
            errors.append(translate("field_required", field="agency_license"))
        elif len(license_no) < 5:
            errors.append(translate("form.agency_license_short"))

    if owner_type == "professionnel" and not form.get("professional_card"):
        warnings.append(translate("form.professional_card_missing"))


def _documents(form, errors, warnings):
    for field in DOCUMENT_FIELDS:
        label = document_label(field)
        meta = form.get(field)
        if not meta:
            if field in REQUIRED_DOCUMENTS:
                errors.append(translate("form.document_missing", label=label))
            continue
        result = validate_document_file(meta, label)
        errors.extend(result["errors"])
        warnings.extend(result["warnings"])


def _kyc(form, errors, warnings):
    id_number = _text(form, "id_number")
    if not id_number:
        errors.append(translate("field_required", field="id_number"))
    elif not _ID_NUMBER_RE.match(_WHITESPACE_RE.sub("", id_number)):
        errors.append(translate("form.id_number_invalid"))

    bank_account = _text(form, "bank_account")
    if not bank_account:
        errors.append(translate("field_required", field="bank_account"))
    else:
        if not _BANK_ACCOUNT_RE.match(_WHITESPACE_RE.sub("", bank_account)):
            errors.append(translate("form.bank_account_invalid"))
        if "test" in bank_account.lower():
            errors.append(translate("form.bank_account_test"))

    if not form.get("accept_terms"):
        errors.append(translate("form.terms_required"))


_STEPS = {1: _personal_info, 2: _owner_type, 3: _documents, 4: _kyc}


# ── Public API ───────────────────────────────────────────────────────────────


def validate_document_file(meta: dict, label: str) -> dict:
    """Size, content type and filename checks for one uploaded document."""
    max_bytes, allowed_types = _limits()
    errors, warnings = [], []
    size = int(meta.get("size") or 0)
    content_type = (meta.get("content_type") or "").lower()
    filename = meta.get("filename") or ""

    if size > max_bytes:
        errors.append(translate("form.file_too_large", label=label))
    if content_type not in allowed_types:
        errors.append(translate("form.file_type_invalid", label=label))
    if len(filename) > MAX_FILENAME_LENGTH:
        errors.append(translate("form.file_name_too_long", label=label))
    if content_type.startswith("image/") and size < LOW_QUALITY_IMAGE_BYTES:
        warnings.append(translate("form.image_low_quality", label=label))
    return {"is_valid": not errors, "errors": errors, "warnings": warnings}


def validate_form_data(form: dict, step: int) -> dict:
    """Validate one form step (1..4)."""
    errors, warnings = [], []
    handler = _STEPS.get(step)
    if handler is None:
        errors.append(translate("form.step_invalid", step=step))
    else:
        handler(form or {}, errors, warnings)
    return {"is_valid": not errors, "errors": errors, "warnings": warnings, "step": step}


def validate_complete_submission(form: dict, user_id, to_role=UserType.OWNER, check_duplicate=True) -> dict:
    """All four steps plus duplicate-request and account checks.

    ``check_duplicate=False`` skips the open-request lookup for callers that
    already ran it.
    """
    errors, warnings = [], []
    for step in range(1, TOTAL_FORM_STEPS + 1):
        result = validate_form_data(form, step)
        errors.extend(result["errors"])
        warnings.extend(result["warnings"])

    try:
        if check_duplicate:
            open_request = db.session.execute(
                select(RoleChangeRequest.id).where(
                    RoleChangeRequest.user_id == user_id,
                    RoleChangeRequest.to_role == to_role,
                    RoleChangeRequest.status.in_(OPEN_ROLE_REQUEST_STATUSES),
                ).limit(1)
            ).first()
            if open_request is not None:
                errors.append(translate("duplicate_request"))

        profile = db.session.get(UserProfile, user_id)
        if profile is None or not profile.is_verified:
            warnings.append(translate("form.email_unverified_warning"))
        if profile is not None and profile.user_type == UserType.OWNER:
            errors.append(translate("req.already_owner"))
    except SQLAlchemyError:
        logger.exception("Submission status check failed", extra={"user_id": user_id})
        db.session.rollback()
        warnings.append(translate("form.status_check_failed"))

    return {"is_valid": not errors, "errors": errors, "warnings": warnings, "step": TOTAL_FORM_STEPS}


def format_data_for_submission(form: dict) -> dict:
    """Normalised snapshot stored in ``request_data``."""
    form = form or {}

    def squash(key):
        return _WHITESPACE_RE.sub(" ", _text(form, key))

    return {
        "full_name": _text(form, "full_name"),
        "phone": squash("phone"),
        "address": _text(form, "address"),
        "city": _text(form, "city"),
        "owner_type": _text(form, "owner_type") or "particulier",
        "agency_name": _text(form, "agency_name"),
        "agency_license": squash("agency_license"),
        "id_number": _WHITESPACE_RE.sub("", _text(form, "id_number")),
        "bank_account": squash("bank_account"),
        "accept_terms": bool(form.get("accept_terms")),
    }


def generate_summary(form: dict) -> list[str]:
    """Human-readable lines for the confirmation screen."""
    form = form or {}
    lines = []
    if _text(form, "full_name"):
        lines.append(translate("summary.name", value=_text(form, "full_name")))
    if _text(form, "phone"):
        lines.append(translate("summary.phone", value=_text(form, "phone")))
    if _text(form, "address") and _text(form, "city"):
        lines.append(translate("summary.address", address=_text(form, "address"), city=_text(form, "city")))

    owner_type = _text(form, "owner_type")
    label = translate(f"owner_type.{owner_type}") if owner_type in OWNER_TYPES else owner_type
    lines.append(translate("summary.type", value=label))
    if owner_type == "agence" and _text(form, "agency_name"):
        lines.append(translate("summary.agency", value=_text(form, "agency_name")))

    for field in DOCUMENT_FIELDS:
        meta = form.get(field)
        if meta:
            lines.append(translate(f"summary.{field}", value=meta.get("filename", "")))
    return lines
