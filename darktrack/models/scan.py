import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from darktrack.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scan(Base):
    __tablename__ = "scans"
    __table_args__ = (
        Index("ix_scans_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # encrypted
    email = Column(Text, nullable=False)

    breach_count = Column(Integer, nullable=False, server_default=text("0"))
    profiles_detected = Column(Integer, nullable=False, server_default=text("0"))
    risk_score = Column(Integer, nullable=False, server_default=text("0"))
    secured_data_percentage = Column(Integer, nullable=False, server_default=text("100"))

    # encrypted
    ai_summary = Column(Text, nullable=True)
    ai_recommendations = Column(JSON, nullable=True)
    ai_generated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    breaches = relationship(
        "Breach",
        back_populates="scan",
        cascade="all, delete-orphan",
        order_by="Breach.pwn_count.desc()",
    )


class Breach(Base):
    __tablename__ = "breaches"

    id = Column(String(36), primary_key=True, default=_new_id)
    scan_id = Column(
        String(36),
        ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String, nullable=False)
    domain = Column(String, nullable=True)
    breach_date = Column(String, nullable=True)
    added_date = Column(String, nullable=True)
    modified_date = Column(String, nullable=True)
    pwn_count = Column(BigInteger, nullable=True)

    # encrypted
    description = Column(Text, nullable=True)
    data_classes = Column(JSON, nullable=True)

    is_verified = Column(Integer, nullable=False, server_default=text("0"))
    is_fabricated = Column(Integer, nullable=False, server_default=text("0"))
    is_sensitive = Column(Integer, nullable=False, server_default=text("0"))
    is_retired = Column(Integer, nullable=False, server_default=text("0"))
    is_spam_list = Column(Integer, nullable=False, server_default=text("0"))
    is_malware = Column(Integer, nullable=False, server_default=text("0"))

    severity = Column(String(10), nullable=False, server_default=text("'medium'"))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    scan = relationship("Scan", back_populates="breaches")


class Vulnerability(Base):
    __tablename__ = "vulnerabilities"
    __table_args__ = (
        Index("ix_vulnerabilities_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    scan_id = Column(
        String(36),
        ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    category = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False, server_default=text("'medium'"))

    # encrypted
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    metadata_enc = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
