"""
Shared pytest fixtures for the workflow service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, and fresh workflow
      dependencies (temporary document dir, in-memory flags, ticking clock)
    - client: Flask test client (function-scoped)
    - storage / flags / clock: the per-test workflow dependencies
    - make_profile / make_lease: ORM factories
    - tenant / owner / agency / admin: ready-made profiles
"""

import itertools
from datetime import date, datetime, timedelta, timezone

import pytest

from rentflow import create_app
from rentflow.models import db as _db
from rentflow.models.lease import Lease
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import UserType
from rentflow.services.context import EXTENSION_KEY
from rentflow.services.document_storage import LocalDocumentStorage
from rentflow.services.feature_flags import FeatureFlags
from rentflow.services.kv_store import MemoryKVStore

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock: each call returns one second later than the last."""

    def __init__(self, start=NOW, step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db, tmp_path):
    """Per-test: fresh workflow dependencies, rollback after test, recreate tables."""
    ext = app.extensions[EXTENSION_KEY]
    saved = dict(ext)
    kv = MemoryKVStore()
    ext.update(
        storage=LocalDocumentStorage(str(tmp_path / "documents")),
        kv=kv,
        flags=FeatureFlags(kv),
        clock=TickingClock(),
    )
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    ext.clear()
    ext.update(saved)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def storage(app):
    return app.extensions[EXTENSION_KEY]["storage"]


@pytest.fixture()
def flags(app):
    return app.extensions[EXTENSION_KEY]["flags"]


@pytest.fixture()
def clock(app):
    return app.extensions[EXTENSION_KEY]["clock"]


# ═════════════════════════════════════════════════════════════════════════════
# ORM Helper Factories
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def make_profile():
    """Factory for committed profiles; defaults to a fully verified tenant."""
    counter = itertools.count(1)

    def _make(user_type=UserType.TENANT, **overrides):
        n = next(counter)
        fields = {
            "email": f"user{n}@example.ci",
            "full_name": f"Kouassi Test {n}",
            "phone": "+225 0701020304",
            "city": "Abidjan",
            "user_type": user_type,
            "is_verified": True,
            "oneci_verified": True,
            "cnam_verified": False,
            "face_verified": True,
        }
        fields.update(overrides)
        profile = UserProfile(**fields)
        _db.session.add(profile)
        _db.session.commit()
        return profile

    return _make


@pytest.fixture()
def make_lease():
    """Factory for committed leases; defaults to a signed one-year lease."""

    def _make(landlord, tenant, status="signed", **overrides):
        fields = {
            "property_title": "Appartement 3 pièces, Cocody",
            "landlord_id": landlord.id,
            "tenant_id": tenant.id,
            "monthly_rent": 250000,
            "start_date": date(2026, 1, 1),
            "end_date": date(2026, 12, 31),
            "status": status,
        }
        fields.update(overrides)
        lease = Lease(**fields)
        _db.session.add(lease)
        _db.session.commit()
        return lease

    return _make


@pytest.fixture()
def tenant(make_profile):
    return make_profile(UserType.TENANT)


@pytest.fixture()
def owner(make_profile):
    return make_profile(UserType.OWNER)


@pytest.fixture()
def agency(make_profile):
    return make_profile(UserType.AGENCY, full_name="Agence Immobilière Plateau")


@pytest.fixture()
def admin(make_profile):
    return make_profile(UserType.ADMIN, full_name="Admin ANSUT")


@pytest.fixture()
def lease(make_lease, owner, tenant):
    return make_lease(owner, tenant)


@pytest.fixture()
def owner_form():
    """A complete, valid owner-upgrade form (document fields carry metadata)."""
    return {
        "full_name": "Kouassi Aya",
        "phone": "+225 07 01 02 03 04",
        "address": "Rue des Jardins, Cocody",
        "city": "Abidjan",
        "owner_type": "particulier",
        "id_document": {"filename": "cni.pdf", "content_type": "application/pdf", "size": 240_000},
        "proof_of_address": {"filename": "facture.pdf", "content_type": "application/pdf", "size": 180_000},
        "id_number": "CI0012345678",
        "bank_account": "CI93 CI000 01234 5678901234 56",
        "accept_terms": True,
    }


@pytest.fixture()
def documents():
    """Upload payloads matching ``owner_form``."""
    return [
        {"type": "id_document", "filename": "cni.pdf", "content_type": "application/pdf", "data": b"%PDF-1.4 id"},
        {"type": "proof_of_address", "filename": "facture.pdf", "content_type": "application/pdf",
         "data": b"%PDF-1.4 address"},
    ]
