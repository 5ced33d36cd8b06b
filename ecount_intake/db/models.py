"""SQLAlchemy ORM models for organizations, ERP sessions and logs."""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Organization(Base):
    """A tenant that owns one Ecount connection."""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    connection = relationship("EcountConnection", back_populates="organization", uselist=False)
    order_logs = relationship("OrderLog", back_populates="organization")


class EcountConnection(Base):
    """Non-secret Ecount account settings. The API key itself lives in server config."""
    __tablename__ = "ecount_connections"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), unique=True, nullable=False)
    company_code = Column(String(50), nullable=True)
    ecount_user_id = Column(String(100), nullable=True)
    status = Column(String(20), default="pending")  # pending, connected, error
    masked_api_key_suffix = Column(String(4), nullable=True)
    last_error = Column(Text, nullable=True)
    last_tested_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    organization = relationship("Organization", back_populates="connection")


class EcountSessionRow(Base):
    """Cached vendor session, one per (company_code, user_id)."""
    __tablename__ = "ecount_sessions"
    __table_args__ = (UniqueConstraint("company_code", "user_id", name="uq_ecount_session_account"),)

    id = Column(Integer, primary_key=True, index=True)
    company_code = Column(String(50), nullable=False)
    user_id = Column(String(100), nullable=False)
    session_id = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class EcountLog(Base):
    """Audit entry for one external call attempt (secrets already masked)."""
    __tablename__ = "ecount_logs"

    id = Column(Integer, primary_key=True, index=True)
    trace_id = Column(String(64), nullable=False, index=True)
    endpoint = Column(String(100), nullable=False)
    request_summary = Column(JSON, nullable=True)
    response_summary = Column(JSON, nullable=True)
    status_code = Column(Integer, nullable=True)
    duration_ms = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class OrderLog(Base):
    """One submitted order and its outcome."""
    __tablename__ = "order_logs"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    trace_id = Column(String(64), nullable=True, index=True)
    raw_text = Column(Text, nullable=True)
    parsed_data = Column(JSON, nullable=True)
    erp_response = Column(JSON, nullable=True)
    status = Column(String(20), default="pending")  # pending, success, failed
    error_message = Column(Text, nullable=True)
    document_id = Column(String(100), nullable=True)
    total_amount = Column(Float, default=0.0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    organization = relationship("Organization", back_populates="order_logs")
