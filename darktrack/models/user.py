import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from darktrack.db import Base


class User(Base):
    """
    Owned by the auth service. The scan pipeline only reads `email`
    and reads/conditionally updates `last_manual_lookup_at`.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String, unique=True, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    last_manual_lookup_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
