from __future__ import annotations

from datetime import datetime


class ScanError(Exception):
    """Base class for errors raised by the scan pipeline."""

    code = "SCAN_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(ScanError):
    code = "INVALID_INPUT"

    def __init__(self, field: str, message: str, code: str | None = None):
        super().__init__(message)
        self.field = field
        if code:
            self.code = code

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["error"]["field"] = self.field
        return detail


class RateLimited(ScanError):
    """
    Expected outcome of the quick-lookup path, not a failure.
    Carries the instant the next lookup becomes available.
    """

    code = "MANUAL_LOOKUP_LIMIT"

    def __init__(self, next_available_at: datetime):
        self.next_available_at = next_available_at
        self.next_available_iso = next_available_at.isoformat()
        self.next_available_display = next_available_at.strftime("%b %d, %Y at %I:%M %p UTC")
        super().__init__(
            f"Quick lookup already used. Next lookup available {self.next_available_display}"
        )

    def retry_after_seconds(self, now: datetime) -> int:
        return max(1, int((self.next_available_at - now).total_seconds()))

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["error"]["next_available_at"] = self.next_available_iso
        detail["error"]["next_available_display"] = self.next_available_display
        return detail


class UpstreamDegraded(ScanError):
    """Provider failure. Absorbed into fallback values, only ever logged."""

    code = "UPSTREAM_DEGRADED"


class PersistenceError(ScanError):
    code = "SCAN_PERSIST_FAILED"


class CryptoError(ScanError):
    code = "CRYPTO_MISCONFIGURED"


class ScanNotFound(ScanError):
    code = "SCAN_NOT_FOUND"
