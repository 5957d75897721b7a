from typing import List, Optional
from urllib.parse import quote

import requests

from darktrack.core.config import get_hibp_api_key, get_hibp_timeout, get_hibp_user_agent
from darktrack.core.errors import UpstreamDegraded
from darktrack.schemas.scan import BreachRecord
from darktrack.services.breach.base import BreachProvider

HIBP_EMAIL_API = "https://haveibeenpwned.com/api/v3/breachedaccount"

SENSITIVE_DATA_CLASSES = (
    "passwords",
    "credit cards",
    "social security numbers",
    "banking information",
    "financial information",
)

LARGE_BREACH_THRESHOLD = 1_000_000


def classify_severity(
    data_classes: Optional[List[str]],
    pwn_count: Optional[int],
    is_sensitive: bool,
    is_verified: bool,
) -> str:
    has_sensitive_data = any(
        sensitive in (data_class or "").lower()
        for data_class in (data_classes or [])
        for sensitive in SENSITIVE_DATA_CLASSES
    )

    if has_sensitive_data or is_sensitive:
        return "high"

    if (pwn_count or 0) > LARGE_BREACH_THRESHOLD or not is_verified:
        return "medium"

    return "low"


def to_breach_record(breach: dict) -> BreachRecord:
    data_classes = list(breach.get("DataClasses") or [])
    pwn_count = breach.get("PwnCount")
    is_sensitive = bool(breach.get("IsSensitive"))
    is_verified = bool(breach.get("IsVerified"))

    return BreachRecord(
        name=breach.get("Title") or breach["Name"],
        domain=breach.get("Domain") or None,
        breach_date=breach.get("BreachDate"),
        added_date=breach.get("AddedDate"),
        modified_date=breach.get("ModifiedDate"),
        pwn_count=pwn_count,
        description=breach.get("Description"),
        data_classes=data_classes,
        is_verified=is_verified,
        is_fabricated=bool(breach.get("IsFabricated")),
        is_sensitive=is_sensitive,
        is_retired=bool(breach.get("IsRetired")),
        is_spam_list=bool(breach.get("IsSpamList")),
        is_malware=bool(breach.get("IsMalware")),
        severity=classify_severity(data_classes, pwn_count, is_sensitive, is_verified),
    )


class HIBPProvider(BreachProvider):
    """
    Have I Been Pwned provider.
    A single attempt per lookup, bounded by `timeout`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        user_agent: str,
        timeout: float = 8.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

        self.headers = {
            "hibp-api-key": api_key or "",
            "user-agent": user_agent,
        }

    @classmethod
    def from_env(cls) -> "HIBPProvider":
        return cls(
            api_key=get_hibp_api_key(),
            user_agent=get_hibp_user_agent(),
            timeout=get_hibp_timeout(),
        )

    def fetch_breaches(self, email: str) -> List[BreachRecord]:
        if not self.api_key:
            raise UpstreamDegraded("HIBP_API_KEY not set")

        url = f"{HIBP_EMAIL_API}/{quote(email, safe='')}"

        try:
            resp = self.session.get(
                url,
                headers=self.headers,
                params={"truncateResponse": "false"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamDegraded(f"Breach service request failed: {type(exc).__name__}") from exc

        # ---------- NO BREACH ----------
        if resp.status_code == 404:
            return []

        if resp.status_code != 200:
            raise UpstreamDegraded(f"Breach service returned HTTP {resp.status_code}")

        try:
            breaches = resp.json()
            return [to_breach_record(b) for b in breaches]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise UpstreamDegraded(f"Malformed breach service response: {type(exc).__name__}") from exc
