# /contentgen/models/org.py
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime

from contentgen.core.database import Base

class Org(Base):
    """Local mirror of an upstream organization, keyed by its external id."""
    __tablename__ = "orgs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    clerk_org_id: Mapped[str] = mapped_column(String(190), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
