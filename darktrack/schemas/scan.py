from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high"]


class BreachRecord(BaseModel):
    """One breach as reported by the breach-intelligence provider, already classified."""

    model_config = ConfigDict(frozen=True)

    name: str
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    added_date: Optional[str] = None
    modified_date: Optional[str] = None
    pwn_count: Optional[int] = None
    description: Optional[str] = None
    data_classes: List[str] = Field(default_factory=list)

    is_verified: bool = False
    is_fabricated: bool = False
    is_sensitive: bool = False
    is_retired: bool = False
    is_spam_list: bool = False
    is_malware: bool = False

    severity: Severity


class BreachCreate(BreachRecord):
    scan_id: str


class ScanCreate(BaseModel):
    user_id: str
    email: str
    breach_count: int = 0
    profiles_detected: int = 0
    risk_score: int = 0
    secured_data_percentage: int = 100
    ai_summary: Optional[str] = None
    ai_recommendations: Optional[List[str]] = None
    ai_generated_at: Optional[datetime] = None


class ScanView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    email: str
    breach_count: int
    profiles_detected: int
    risk_score: int
    secured_data_percentage: int
    ai_summary: Optional[str] = None
    ai_recommendations: Optional[List[str]] = None
    ai_generated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BreachView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    scan_id: str
    name: str
    domain: Optional[str] = None
    breach_date: Optional[str] = None
    added_date: Optional[str] = None
    modified_date: Optional[str] = None
    pwn_count: Optional[int] = None
    description: Optional[str] = None
    data_classes: Optional[List[str]] = None
    is_verified: bool
    is_fabricated: bool
    is_sensitive: bool
    is_retired: bool
    is_spam_list: bool
    is_malware: bool
    severity: Severity
    created_at: Optional[datetime] = None


class ScanWithBreaches(ScanView):
    breaches: List[BreachView] = Field(default_factory=list)


class VulnerabilityCreate(BaseModel):
    user_id: str
    scan_id: Optional[str] = None
    category: str
    severity: Severity = "medium"
    title: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class VulnerabilityView(BaseModel):
    id: str
    user_id: str
    scan_id: Optional[str] = None
    category: str
    severity: Severity
    title: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class NarrativeResult(BaseModel):
    summary: str
    recommendations: List[str]


# ---------- request / response models ----------
class ScanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str


class QuickLookupResult(BaseModel):
    email: str
    breach_count: int
    profiles_detected: int
    risk_score: int
    secured_data_percentage: int
    ai_summary: Optional[str] = None
    ai_recommendations: List[str] = Field(default_factory=list)
    breaches: List[BreachRecord] = Field(default_factory=list)
    next_available_at: Optional[datetime] = None


class SaveLookupRequest(BaseModel):
    email: str
    breaches: List[BreachRecord] = Field(default_factory=list)
    ai_summary: Optional[str] = None
    ai_recommendations: List[str] = Field(default_factory=list)
