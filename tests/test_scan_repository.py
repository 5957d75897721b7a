"""
SQL persistence: encryption at rest, decrypted reads, atomic scan writes, quota primitive.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from darktrack.core.crypto import looks_like_ciphertext
from darktrack.core.errors import PersistenceError
from darktrack.models.scan import Breach, Scan, Vulnerability
from darktrack.models.user import User
from darktrack.schemas.scan import BreachCreate, ScanCreate, VulnerabilityCreate

from fakes import make_breach


def _scan_create(user_id, **overrides):
    data = dict(
        user_id=user_id,
        email="target@example.com",
        breach_count=2,
        profiles_detected=1,
        risk_score=60,
        secured_data_percentage=40,
        ai_summary="Two breaches, one with passwords.",
        ai_recommendations=["Rotate passwords", "Enable 2FA"],
    )
    data.update(overrides)
    return ScanCreate(**data)


class TestScanEncryption:
    """Sensitive scan fields are ciphertext in the table and plaintext on read."""

    def test_create_scan_encrypts_and_returns_plaintext(self, repository, db_session, user):
        scan = repository.create_scan(_scan_create(user.id))

        assert scan.email == "target@example.com"
        assert scan.ai_summary == "Two breaches, one with passwords."

        raw = db_session.execute(select(Scan.email, Scan.ai_summary)).one()
        assert looks_like_ciphertext(raw.email)
        assert looks_like_ciphertext(raw.ai_summary)
        assert "target@example.com" not in raw.email

    def test_every_read_path_decrypts(self, repository, user):
        created = repository.create_scan(_scan_create(user.id))

        assert repository.get_scan_by_id(created.id).email == "target@example.com"
        assert repository.get_latest_scan_by_user_id(user.id).email == "target@example.com"
        assert [s.email for s in repository.get_scans_by_user_id(user.id)] == ["target@example.com"]
        assert repository.get_recent_scans_with_breaches(user.id, 3)[0].ai_summary == created.ai_summary

    def test_legacy_plaintext_rows_still_readable(self, repository, db_session, user):
        db_session.add(Scan(
            id="legacy-scan",
            user_id=user.id,
            email="legacy@example.com",
            ai_summary="Written before encryption.",
        ))
        db_session.commit()

        scan = repository.get_scan_by_id("legacy-scan")
        assert scan.email == "legacy@example.com"
        assert scan.ai_summary == "Written before encryption."

    def test_recommendations_are_copied(self, repository, user):
        recommendations = ["Rotate passwords"]
        scan = repository.create_scan(_scan_create(user.id, ai_recommendations=recommendations))

        recommendations.append("mutated")
        assert repository.get_scan_by_id(scan.id).ai_recommendations == ["Rotate passwords"]

    def test_missing_summary_stays_null(self, repository, user):
        scan = repository.create_scan(_scan_create(user.id, ai_summary=None, ai_recommendations=None))
        assert scan.ai_summary is None
        assert scan.ai_recommendations is None


class TestScanQueries:
    """Ordering and lookups."""

    def test_newest_first(self, repository, user):
        first = repository.create_scan(_scan_create(user.id, email="one@example.com"))
        second = repository.create_scan(_scan_create(user.id, email="two@example.com"))

        assert [s.id for s in repository.get_scans_by_user_id(user.id)] == [second.id, first.id]
        assert repository.get_latest_scan_by_user_id(user.id).id == second.id

    def test_unknown_ids(self, repository, user):
        assert repository.get_scan_by_id("missing") is None
        assert repository.get_latest_scan_by_user_id("nobody") is None
        assert repository.get_scans_by_user_id("nobody") == []

    def test_recent_scans_with_breaches(self, repository, user):
        for i in range(4):
            repository.save_scan_with_breaches(
                _scan_create(user.id, email=f"scan{i}@example.com"),
                [make_breach("Small", pwn_count=10), make_breach("Big", pwn_count=10_000)],
            )

        recent = repository.get_recent_scans_with_breaches(user.id, 3)

        assert [s.email for s in recent] == ["scan3@example.com", "scan2@example.com", "scan1@example.com"]
        assert [b.name for b in recent[0].breaches] == ["Big", "Small"]
        assert recent[0].breaches[0].description == "A breach happened."


class TestBreaches:
    """Breach rows."""

    def test_create_breaches_encrypts_description(self, repository, db_session, user):
        scan = repository.create_scan(_scan_create(user.id))
        breach = make_breach("LinkedIn", severity="high", is_sensitive=True)

        created = repository.create_breaches([BreachCreate(scan_id=scan.id, **breach.model_dump())])

        assert created[0].description == "A breach happened."
        raw = db_session.execute(select(Breach.description, Breach.is_sensitive)).one()
        assert looks_like_ciphertext(raw.description)
        assert raw.is_sensitive == 1

    def test_create_breach_single(self, repository, user):
        scan = repository.create_scan(_scan_create(user.id))
        created = repository.create_breach(BreachCreate(scan_id=scan.id, **make_breach().model_dump()))
        assert created.scan_id == scan.id
        assert created.is_verified is True

    def test_empty_bulk_insert_is_noop(self, repository):
        assert repository.create_breaches([]) == []

    def test_ordered_by_pwn_count_desc(self, repository, user):
        scan = repository.save_scan_with_breaches(
            _scan_create(user.id),
            [
                make_breach("Mid", pwn_count=500),
                make_breach("Unknown", pwn_count=None),
                make_breach("Huge", pwn_count=9_000_000),
            ],
        )

        names = [b.name for b in repository.get_breaches_by_scan_id(scan.id)]
        assert names == ["Huge", "Mid", "Unknown"]

    def test_data_classes_copied(self, repository, user):
        data_classes = ["Passwords"]
        breach = make_breach(data_classes=data_classes)
        scan = repository.save_scan_with_breaches(_scan_create(user.id), [breach])

        data_classes.append("mutated")
        assert repository.get_breaches_by_scan_id(scan.id)[0].data_classes == ["Passwords"]


class TestAtomicScanWrite:
    """A scan and its breaches commit together or not at all."""

    def test_scan_and_breaches_saved(self, repository, user):
        scan = repository.save_scan_with_breaches(
            _scan_create(user.id),
            [make_breach("A"), make_breach("B")],
        )

        assert scan.breach_count == 2
        assert len(repository.get_breaches_by_scan_id(scan.id)) == 2

    def test_breach_insert_failure_rolls_back_scan(self, repository, db_session, user):
        failure = OperationalError("INSERT INTO breaches", {}, Exception("disk full"))

        with patch.object(db_session, "add_all", side_effect=failure):
            with pytest.raises(PersistenceError):
                repository.save_scan_with_breaches(
                    _scan_create(user.id),
                    [make_breach("A"), make_breach("B")],
                )

        assert repository.get_scans_by_user_id(user.id) == []
        assert db_session.execute(select(Breach)).scalars().all() == []

    def test_no_breaches(self, repository, user):
        scan = repository.save_scan_with_breaches(
            _scan_create(user.id, breach_count=0, risk_score=0, secured_data_percentage=100),
            [],
        )
        assert repository.get_breaches_by_scan_id(scan.id) == []


class TestAIRegeneration:
    """Rewriting the stored narrative."""

    def test_update_scan_ai_analysis(self, repository, db_session, user):
        scan = repository.create_scan(_scan_create(user.id))
        generated_at = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)

        updated = repository.update_scan_ai_analysis(scan.id, "Fresh summary.", ["New step"], generated_at)

        assert updated.ai_summary == "Fresh summary."
        assert updated.ai_recommendations == ["New step"]
        assert updated.ai_generated_at == generated_at
        raw = db_session.execute(select(Scan.ai_summary)).scalar()
        assert looks_like_ciphertext(raw)

    def test_update_missing_scan(self, repository):
        assert repository.update_scan_ai_analysis("missing", "s", [], datetime.now(timezone.utc)) is None


class TestVulnerabilities:
    """Vulnerability rows encrypt title, description and metadata."""

    def test_create_and_read(self, repository, db_session, user):
        scan = repository.create_scan(_scan_create(user.id))

        created = repository.create_vulnerabilities([
            VulnerabilityCreate(
                user_id=user.id,
                scan_id=scan.id,
                category="credential_reuse",
                severity="high",
                title="Password reused across breaches",
                description="Same password seen in LinkedIn and Adobe dumps.",
                metadata={"breaches": ["LinkedIn", "Adobe"]},
            )
        ])

        assert created[0].title == "Password reused across breaches"
        raw = db_session.execute(
            select(Vulnerability.title, Vulnerability.description, Vulnerability.metadata_enc)
        ).one()
        assert all(looks_like_ciphertext(value) for value in raw)

        [read] = repository.get_vulnerabilities_by_scan_id(scan.id)
        assert read.description == "Same password seen in LinkedIn and Adobe dumps."
        assert read.metadata == {"breaches": ["LinkedIn", "Adobe"]}

    def test_empty_bulk_insert_is_noop(self, repository):
        assert repository.create_vulnerabilities([]) == []


class TestManualLookupQuota:
    """Conditional timestamp update."""

    def _set_last_lookup(self, db_session, user, value):
        user.last_manual_lookup_at = value
        db_session.commit()

    def test_unset_timestamp_is_acquired(self, repository, user):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

        assert repository.update_user_manual_lookup_timestamp(user.id, now, timedelta(hours=24)) is True
        assert repository.get_user_manual_lookup_timestamp(user.id) == now

    def test_second_acquire_in_window_fails(self, repository, user):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        window = timedelta(hours=24)

        assert repository.update_user_manual_lookup_timestamp(user.id, now, window) is True
        assert repository.update_user_manual_lookup_timestamp(user.id, now + timedelta(minutes=1), window) is False
        assert repository.get_user_manual_lookup_timestamp(user.id) == now

    def test_recent_timestamp_blocks(self, repository, db_session, user):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        last = now - timedelta(hours=23)
        self._set_last_lookup(db_session, user, last)

        assert repository.update_user_manual_lookup_timestamp(user.id, now, timedelta(hours=24)) is False
        assert repository.get_user_manual_lookup_timestamp(user.id) == last

    def test_old_timestamp_is_replaced(self, repository, db_session, user):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        self._set_last_lookup(db_session, user, now - timedelta(hours=25))

        assert repository.update_user_manual_lookup_timestamp(user.id, now, timedelta(hours=24)) is True
        assert repository.get_user_manual_lookup_timestamp(user.id) == now

    def test_unknown_user(self, repository):
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
        assert repository.update_user_manual_lookup_timestamp("nobody", now, timedelta(hours=24)) is False
        assert repository.get_user_manual_lookup_timestamp("nobody") is None

    def test_only_user_row_touched(self, repository, db_session, user):
        other = User(id="other-user", email="other@example.com")
        db_session.add(other)
        db_session.commit()
        now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

        repository.update_user_manual_lookup_timestamp(user.id, now, timedelta(hours=24))

        assert repository.get_user_manual_lookup_timestamp("other-user") is None
