# /contentgen/models/generation.py
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, ForeignKey, Integer, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.dialects.mysql import LONGTEXT

from contentgen.core.database import Base

_LongText = Text().with_variant(LONGTEXT(), "mysql")

class Generation(Base):
    __tablename__ = "generations"
    __table_args__ = (
        UniqueConstraint("org_id", "idempotency_key", name="uq_generations_org_idempotency"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(36), ForeignKey("orgs.id", ondelete="CASCADE"), index=True)
    app_id: Mapped[str] = mapped_column(String(120), index=True)
    brand_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)

    # sequence | email | calendar
    kind: Mapped[str] = mapped_column(String(20))
    prompt_type: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    key_mode: Mapped[str] = mapped_column(String(10))

    # caller's run; the ledger run we create is generation_run_id
    run_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    generation_run_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    apollo_enrichment_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    workflow_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(190), nullable=True)

    # Input
    prompt: Mapped[Optional[str]] = mapped_column(_LongText, nullable=True)
    variables_raw: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    include_footer: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Lead / client columns pulled out of variables
    lead_first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lead_last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lead_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lead_company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lead_industry: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_company_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Output - email / sequence
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_html: Mapped[Optional[str]] = mapped_column(_LongText, nullable=True)
    body_text: Mapped[Optional[str]] = mapped_column(_LongText, nullable=True)
    sequence: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Output - calendar
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(_LongText, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    model: Mapped[str] = mapped_column(String(80))
    tokens_input: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_output: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Raw data for debugging
    prompt_raw: Mapped[Optional[str]] = mapped_column(_LongText, nullable=True)
    response_raw: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
