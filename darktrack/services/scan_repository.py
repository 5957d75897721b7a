from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from darktrack.core.crypto import CryptoService
from darktrack.core.errors import PersistenceError
from darktrack.models.scan import Breach, Scan, Vulnerability
from darktrack.models.user import User
from darktrack.schemas.scan import (
    BreachCreate,
    BreachRecord,
    BreachView,
    ScanCreate,
    ScanView,
    ScanWithBreaches,
    VulnerabilityCreate,
    VulnerabilityView,
)

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScanRepository(ABC):
    """
    Storage boundary for scans, breaches and vulnerabilities.

    Sensitive fields are encrypted on the way in and every entity
    returned is already decrypted. There is no raw read mode.
    """

    # ---------- scans ----------
    @abstractmethod
    def create_scan(self, scan: ScanCreate) -> ScanView:
        pass

    @abstractmethod
    def get_latest_scan_by_user_id(self, user_id: str) -> Optional[ScanView]:
        pass

    @abstractmethod
    def get_scans_by_user_id(self, user_id: str) -> List[ScanView]:
        pass

    @abstractmethod
    def get_scan_by_id(self, scan_id: str) -> Optional[ScanView]:
        pass

    @abstractmethod
    def get_recent_scans_with_breaches(self, user_id: str, limit: int) -> List[ScanWithBreaches]:
        pass

    @abstractmethod
    def save_scan_with_breaches(self, scan: ScanCreate, breaches: Sequence[BreachRecord]) -> ScanView:
        """Scan and all its breach rows commit together or not at all."""
        pass

    @abstractmethod
    def update_scan_ai_analysis(
        self,
        scan_id: str,
        summary: str,
        recommendations: List[str],
        generated_at: datetime,
    ) -> Optional[ScanView]:
        pass

    # ---------- breaches ----------
    @abstractmethod
    def create_breach(self, breach: BreachCreate) -> BreachView:
        pass

    @abstractmethod
    def create_breaches(self, breaches: Sequence[BreachCreate]) -> List[BreachView]:
        pass

    @abstractmethod
    def get_breaches_by_scan_id(self, scan_id: str) -> List[BreachView]:
        pass

    # ---------- vulnerabilities ----------
    @abstractmethod
    def create_vulnerabilities(self, items: Sequence[VulnerabilityCreate]) -> List[VulnerabilityView]:
        pass

    @abstractmethod
    def get_vulnerabilities_by_scan_id(self, scan_id: str) -> List[VulnerabilityView]:
        pass

    # ---------- manual lookup quota ----------
    @abstractmethod
    def get_user_manual_lookup_timestamp(self, user_id: str) -> Optional[datetime]:
        pass

    @abstractmethod
    def update_user_manual_lookup_timestamp(
        self,
        user_id: str,
        now: datetime,
        window: timedelta,
    ) -> bool:
        """
        Sets last_manual_lookup_at = now only if it is unset or at least
        `window` old, as one atomic step. Returns True when the slot was taken.
        """
        pass


class SqlScanRepository(ScanRepository):

    def __init__(self, db: Session, crypto: CryptoService):
        self.db = db
        self.crypto = crypto

    # =====================================================
    # ROW <-> VIEW
    # =====================================================
    def _scan_row(self, scan: ScanCreate) -> Scan:
        return Scan(
            id=str(uuid.uuid4()),
            user_id=scan.user_id,
            email=self.crypto.encrypt(scan.email),
            breach_count=scan.breach_count,
            profiles_detected=scan.profiles_detected,
            risk_score=scan.risk_score,
            secured_data_percentage=scan.secured_data_percentage,
            ai_summary=self.crypto.encrypt(scan.ai_summary) if scan.ai_summary else None,
            ai_recommendations=list(scan.ai_recommendations) if scan.ai_recommendations is not None else None,
            ai_generated_at=scan.ai_generated_at,
        )

    def _breach_row(self, scan_id: str, breach: BreachRecord) -> Breach:
        return Breach(
            id=str(uuid.uuid4()),
            scan_id=scan_id,
            name=breach.name,
            domain=breach.domain,
            breach_date=breach.breach_date,
            added_date=breach.added_date,
            modified_date=breach.modified_date,
            pwn_count=breach.pwn_count,
            description=self.crypto.encrypt(breach.description) if breach.description else None,
            data_classes=list(breach.data_classes),
            is_verified=int(breach.is_verified),
            is_fabricated=int(breach.is_fabricated),
            is_sensitive=int(breach.is_sensitive),
            is_retired=int(breach.is_retired),
            is_spam_list=int(breach.is_spam_list),
            is_malware=int(breach.is_malware),
            severity=breach.severity,
        )

    def _scan_view(self, row: Scan) -> ScanView:
        return ScanView(
            id=row.id,
            user_id=row.user_id,
            email=self.crypto.decrypt(row.email),
            breach_count=row.breach_count,
            profiles_detected=row.profiles_detected,
            risk_score=row.risk_score,
            secured_data_percentage=row.secured_data_percentage,
            ai_summary=self.crypto.decrypt(row.ai_summary) if row.ai_summary else None,
            ai_recommendations=list(row.ai_recommendations) if row.ai_recommendations is not None else None,
            ai_generated_at=as_utc(row.ai_generated_at),
            created_at=as_utc(row.created_at),
        )

    def _breach_view(self, row: Breach) -> BreachView:
        return BreachView(
            id=row.id,
            scan_id=row.scan_id,
            name=row.name,
            domain=row.domain,
            breach_date=row.breach_date,
            added_date=row.added_date,
            modified_date=row.modified_date,
            pwn_count=row.pwn_count,
            description=self.crypto.decrypt(row.description) if row.description else None,
            data_classes=list(row.data_classes) if row.data_classes is not None else None,
            is_verified=bool(row.is_verified),
            is_fabricated=bool(row.is_fabricated),
            is_sensitive=bool(row.is_sensitive),
            is_retired=bool(row.is_retired),
            is_spam_list=bool(row.is_spam_list),
            is_malware=bool(row.is_malware),
            severity=row.severity,
            created_at=as_utc(row.created_at),
        )

    def _vulnerability_view(self, row: Vulnerability) -> VulnerabilityView:
        metadata = None
        if row.metadata_enc:
            try:
                metadata = self.crypto.decrypt_object(row.metadata_enc)
            except ValueError:
                logger.warning("Unreadable vulnerability metadata id=%s", row.id)

        return VulnerabilityView(
            id=row.id,
            user_id=row.user_id,
            scan_id=row.scan_id,
            category=row.category,
            severity=row.severity,
            title=self.crypto.decrypt(row.title),
            description=self.crypto.decrypt(row.description) if row.description else None,
            metadata=metadata if isinstance(metadata, dict) else None,
            created_at=as_utc(row.created_at),
        )

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to %s", action)
            raise PersistenceError(f"Failed to {action}") from exc

    # =====================================================
    # SCANS
    # =====================================================
    def create_scan(self, scan: ScanCreate) -> ScanView:
        row = self._scan_row(scan)
        self.db.add(row)
        self._commit("create scan")
        return self._scan_view(row)

    def get_latest_scan_by_user_id(self, user_id: str) -> Optional[ScanView]:
        row = self.db.execute(
            select(Scan)
            .where(Scan.user_id == user_id)
            .order_by(Scan.created_at.desc())
            .limit(1)
        ).scalars().first()

        if not row:
            return None
        return self._scan_view(row)

    def get_scans_by_user_id(self, user_id: str) -> List[ScanView]:
        rows = self.db.execute(
            select(Scan)
            .where(Scan.user_id == user_id)
            .order_by(Scan.created_at.desc())
        ).scalars().all()
        return [self._scan_view(row) for row in rows]

    def get_scan_by_id(self, scan_id: str) -> Optional[ScanView]:
        row = self.db.get(Scan, scan_id)
        if not row:
            return None
        return self._scan_view(row)

    def get_recent_scans_with_breaches(self, user_id: str, limit: int) -> List[ScanWithBreaches]:
        rows = self.db.execute(
            select(Scan)
            .options(selectinload(Scan.breaches))
            .where(Scan.user_id == user_id)
            .order_by(Scan.created_at.desc())
            .limit(limit)
        ).scalars().all()

        results = []
        for row in rows:
            view = self._scan_view(row)
            breaches = sorted(row.breaches, key=lambda b: b.pwn_count or 0, reverse=True)
            results.append(
                ScanWithBreaches(
                    **view.model_dump(),
                    breaches=[self._breach_view(b) for b in breaches],
                )
            )
        return results

    def save_scan_with_breaches(self, scan: ScanCreate, breaches: Sequence[BreachRecord]) -> ScanView:
        # Rows are fully built (and encrypted) before the session is touched.
        scan_row = self._scan_row(scan)
        breach_rows = [self._breach_row(scan_row.id, breach) for breach in breaches]

        try:
            self.db.add(scan_row)
            self.db.flush()
            if breach_rows:
                self.db.add_all(breach_rows)
                self.db.flush()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(
                "Failed to save scan user_id=%s breaches=%d",
                scan.user_id,
                len(breach_rows),
            )
            raise PersistenceError("Failed to save scan results") from exc

        return self._scan_view(scan_row)

    def update_scan_ai_analysis(
        self,
        scan_id: str,
        summary: str,
        recommendations: List[str],
        generated_at: datetime,
    ) -> Optional[ScanView]:
        row = self.db.get(Scan, scan_id)
        if not row:
            return None

        row.ai_summary = self.crypto.encrypt(summary) if summary else None
        row.ai_recommendations = list(recommendations)
        row.ai_generated_at = generated_at
        self._commit("update scan analysis")
        return self._scan_view(row)

    # =====================================================
    # BREACHES
    # =====================================================
    def create_breach(self, breach: BreachCreate) -> BreachView:
        row = self._breach_row(breach.scan_id, breach)
        self.db.add(row)
        self._commit("create breach")
        return self._breach_view(row)

    def create_breaches(self, breaches: Sequence[BreachCreate]) -> List[BreachView]:
        if not breaches:
            return []

        rows = [self._breach_row(b.scan_id, b) for b in breaches]
        self.db.add_all(rows)
        self._commit("create breaches")
        return [self._breach_view(row) for row in rows]

    def get_breaches_by_scan_id(self, scan_id: str) -> List[BreachView]:
        rows = self.db.execute(
            select(Breach)
            .where(Breach.scan_id == scan_id)
            .order_by(Breach.pwn_count.desc().nulls_last())
        ).scalars().all()
        return [self._breach_view(row) for row in rows]

    # =====================================================
    # VULNERABILITIES
    # =====================================================
    def create_vulnerabilities(self, items: Sequence[VulnerabilityCreate]) -> List[VulnerabilityView]:
        if not items:
            return []

        rows = [
            Vulnerability(
                id=str(uuid.uuid4()),
                user_id=item.user_id,
                scan_id=item.scan_id,
                category=item.category,
                severity=item.severity,
                title=self.crypto.encrypt(item.title),
                description=self.crypto.encrypt(item.description) if item.description else None,
                metadata_enc=self.crypto.encrypt_object(item.metadata) if item.metadata is not None else None,
            )
            for item in items
        ]
        self.db.add_all(rows)
        self._commit("create vulnerabilities")
        return [self._vulnerability_view(row) for row in rows]

    def get_vulnerabilities_by_scan_id(self, scan_id: str) -> List[VulnerabilityView]:
        rows = self.db.execute(
            select(Vulnerability)
            .where(Vulnerability.scan_id == scan_id)
            .order_by(Vulnerability.created_at.desc())
        ).scalars().all()
        return [self._vulnerability_view(row) for row in rows]

    # =====================================================
    # MANUAL LOOKUP QUOTA
    # =====================================================
    def get_user_manual_lookup_timestamp(self, user_id: str) -> Optional[datetime]:
        value = self.db.execute(
            select(User.last_manual_lookup_at).where(User.id == user_id)
        ).scalar()
        return as_utc(value)

    def update_user_manual_lookup_timestamp(
        self,
        user_id: str,
        now: datetime,
        window: timedelta,
    ) -> bool:
        cutoff = now - window

        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .where(
                    or_(
                        User.last_manual_lookup_at.is_(None),
                        User.last_manual_lookup_at <= cutoff,
                    )
                )
                .values(last_manual_lookup_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to record manual lookup user_id=%s", user_id)
            raise PersistenceError("Failed to record manual lookup") from exc

        return result.rowcount == 1
