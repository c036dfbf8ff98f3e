from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base

class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String(256))
    description: Mapped[str] = mapped_column(Text)
    image_url: Mapped[str] = mapped_column(String)
    contract_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    event_code: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    organizer: Mapped[str] = mapped_column(String(42), index=True)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    claim_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_claimed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    max_supply: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    metadata_ipfs_hash: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

class Claim(Base):
    __tablename__ = "claims"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_address: Mapped[str] = mapped_column(String(42), index=True)
    event_id: Mapped[str] = mapped_column(String, index=True)
    token_id: Mapped[str] = mapped_column(String)
    transaction_hash: Mapped[str] = mapped_column(String(66))
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (UniqueConstraint("user_address", "event_id", name="uniq_user_event"),)

class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[str] = mapped_column(String, index=True)
    action: Mapped[str] = mapped_column(String)
    ip: Mapped[str] = mapped_column(String)
    user_agent: Mapped[str] = mapped_column(String)
    event_id: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    user_address: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    status: Mapped[str] = mapped_column(String)
    reason_code: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
