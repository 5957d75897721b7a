from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from darktrack.core.config import MANUAL_LOOKUP_WINDOW_HOURS
from darktrack.core.errors import PersistenceError, RateLimited, ScanNotFound, ValidationError
from darktrack.schemas.scan import (
    BreachRecord,
    BreachView,
    NarrativeResult,
    QuickLookupResult,
    SaveLookupRequest,
    ScanCreate,
    ScanView,
)
from darktrack.services.ai_narrative import NarrativeClient
from darktrack.services.breach.base import BreachProvider
from darktrack.services.breach.hibp_provider import classify_severity
from darktrack.services.risk_scoring import (
    calculate_risk_score,
    profiles_detected,
    secured_data_percentage,
)
from darktrack.services.scan_repository import ScanRepository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MANUAL_LOOKUP_WINDOW = timedelta(hours=MANUAL_LOOKUP_WINDOW_HOURS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_email_address(raw_email: Optional[str]) -> str:
    value = (raw_email or "").strip()
    if not value:
        raise ValidationError("email", "Email is required", code="EMAIL_REQUIRED")

    if not EMAIL_PATTERN.match(value):
        raise ValidationError("email", "Invalid email format", code="INVALID_EMAIL")

    return value


def reclassify(breach: BreachRecord) -> BreachRecord:
    severity = classify_severity(
        breach.data_classes,
        breach.pwn_count,
        breach.is_sensitive,
        breach.is_verified,
    )
    return breach.model_copy(update={"severity": severity})


def record_from_view(breach: BreachView) -> BreachRecord:
    return BreachRecord(
        name=breach.name,
        domain=breach.domain,
        breach_date=breach.breach_date,
        added_date=breach.added_date,
        modified_date=breach.modified_date,
        pwn_count=breach.pwn_count,
        description=breach.description,
        data_classes=list(breach.data_classes or []),
        is_verified=breach.is_verified,
        is_fabricated=breach.is_fabricated,
        is_sensitive=breach.is_sensitive,
        is_retired=breach.is_retired,
        is_spam_list=breach.is_spam_list,
        is_malware=breach.is_malware,
        severity=breach.severity,
    )


class ScanService:
    """
    Runs the scan pipeline: breach lookup, risk score, AI narrative,
    then (for persisting entry points) one atomic Scan + Breach write.
    """

    def __init__(
        self,
        repository: ScanRepository,
        breach_provider: BreachProvider,
        narrative_client: NarrativeClient,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.breach_provider = breach_provider
        self.narrative_client = narrative_client
        self.clock = clock or _utcnow

    # ---------- pipeline ----------
    def _analyze(self, email: str) -> Tuple[List[BreachRecord], int, NarrativeResult]:
        breaches = self.breach_provider.lookup(email)
        risk_score = calculate_risk_score(breaches)
        narrative = self.narrative_client.generate(email, breaches, risk_score)
        return breaches, risk_score, narrative

    def _persist(
        self,
        user_id: str,
        email: str,
        breaches: List[BreachRecord],
        risk_score: int,
        narrative: Optional[NarrativeResult],
    ) -> ScanView:
        scan = ScanCreate(
            user_id=user_id,
            email=email,
            breach_count=len(breaches),
            profiles_detected=profiles_detected(len(breaches)),
            risk_score=risk_score,
            secured_data_percentage=secured_data_percentage(risk_score),
            ai_summary=narrative.summary if narrative else None,
            ai_recommendations=list(narrative.recommendations) if narrative else None,
            ai_generated_at=self.clock() if narrative else None,
        )
        saved = self.repository.save_scan_with_breaches(scan, breaches)

        logger.info(
            "scan_saved scan_id=%s user_id=%s breaches=%d risk_score=%d",
            saved.id,
            user_id,
            saved.breach_count,
            saved.risk_score,
        )
        return saved

    # ---------- entry points ----------
    def scan_email(self, user_id: str, email: Optional[str]) -> ScanView:
        email = validate_email_address(email)
        breaches, risk_score, narrative = self._analyze(email)
        return self._persist(user_id, email, breaches, risk_score, narrative)

    def scan_self(self, user_id: str, profile_email: Optional[str]) -> ScanView:
        if not profile_email or not profile_email.strip():
            raise ValidationError(
                "email",
                "No email address on file for this account",
                code="PROFILE_EMAIL_MISSING",
            )

        email = profile_email.strip()
        breaches, risk_score, narrative = self._analyze(email)
        return self._persist(user_id, email, breaches, risk_score, narrative)

    def acquire_manual_lookup(self, user_id: str) -> datetime:
        """
        Takes this user's quick-lookup slot or raises RateLimited.
        Returns when the next slot opens.
        """
        now = self.clock()
        acquired = self.repository.update_user_manual_lookup_timestamp(
            user_id,
            now,
            MANUAL_LOOKUP_WINDOW,
        )
        if acquired:
            return now + MANUAL_LOOKUP_WINDOW

        last_lookup_at = self.repository.get_user_manual_lookup_timestamp(user_id)
        if last_lookup_at is None:
            raise PersistenceError("User not found")

        next_available_at = last_lookup_at + MANUAL_LOOKUP_WINDOW
        logger.info(
            "manual_lookup_rejected user_id=%s next_available_at=%s",
            user_id,
            next_available_at.isoformat(),
        )
        raise RateLimited(next_available_at)

    def quick_lookup(self, user_id: str, email: Optional[str]) -> QuickLookupResult:
        email = validate_email_address(email)

        # The slot is consumed before any provider call, whatever happens after.
        next_available_at = self.acquire_manual_lookup(user_id)

        breaches, risk_score, narrative = self._analyze(email)

        return QuickLookupResult(
            email=email,
            breach_count=len(breaches),
            profiles_detected=profiles_detected(len(breaches)),
            risk_score=risk_score,
            secured_data_percentage=secured_data_percentage(risk_score),
            ai_summary=narrative.summary,
            ai_recommendations=list(narrative.recommendations),
            breaches=breaches,
            next_available_at=next_available_at,
        )

    def save_lookup(self, user_id: str, lookup: SaveLookupRequest) -> ScanView:
        email = validate_email_address(lookup.email)

        breaches = [reclassify(b) for b in lookup.breaches]
        risk_score = calculate_risk_score(breaches)

        narrative = None
        if lookup.ai_summary:
            narrative = NarrativeResult(
                summary=lookup.ai_summary,
                recommendations=list(lookup.ai_recommendations),
            )

        return self._persist(user_id, email, breaches, risk_score, narrative)

    def regenerate_analysis(self, user_id: str, scan_id: str) -> ScanView:
        scan = self.repository.get_scan_by_id(scan_id)
        if not scan or scan.user_id != user_id:
            raise ScanNotFound("Scan not found")

        breaches = [record_from_view(b) for b in self.repository.get_breaches_by_scan_id(scan_id)]
        narrative = self.narrative_client.generate(scan.email, breaches, scan.risk_score)

        updated = self.repository.update_scan_ai_analysis(
            scan_id,
            narrative.summary,
            narrative.recommendations,
            self.clock(),
        )
        if not updated:
            raise ScanNotFound("Scan not found")
        return updated
