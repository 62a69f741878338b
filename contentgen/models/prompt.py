# /contentgen/models/prompt.py
from datetime import datetime
from typing import List
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.dialects.mysql import LONGTEXT

from contentgen.core.database import Base

class PromptTemplate(Base):
    """Prompt template registered by an app, one per (app_id, type)."""
    __tablename__ = "prompts"
    __table_args__ = (UniqueConstraint("app_id", "type", name="uq_prompts_app_type"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    app_id: Mapped[str] = mapped_column(String(120), index=True)
    # "email" | "calendar" | custom types
    type: Mapped[str] = mapped_column(String(80))
    # template text with {{variables}}
    prompt: Mapped[str] = mapped_column(Text().with_variant(LONGTEXT(), "mysql"))
    variables: Mapped[List[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
