"""
Provider and provider health database models.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer,
    String, Text
)
from sqlalchemy.orm import relationship

from airouter.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Provider(Base):
    """Upstream AI provider owned by an organization."""

    __tablename__ = "ai_providers"

    id = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64))
    name = Column(String(100), nullable=False)
    type = Column(String(50), nullable=False, index=True)
    base_url = Column(String(500), nullable=False)
    api_key = Column(Text, nullable=False)
    health_check_url = Column(String(500))

    models = Column(JSON, nullable=False, default=list)
    supported_features = Column(JSON, nullable=False, default=list)
    rate_limits = Column(JSON, nullable=False, default=dict)
    cost_per_token = Column(Float, nullable=False, default=0.002)
    is_active = Column(Boolean, nullable=False, default=True)

    # Load balancing configuration
    strategy = Column(String(32), nullable=False, default="round-robin")
    failover_enabled = Column(Boolean, nullable=False, default=True)
    max_retries = Column(Integer, nullable=False, default=3)
    retry_delay_ms = Column(Integer, nullable=False, default=1000)
    circuit_breaker_threshold = Column(Integer, nullable=False, default=5)
    health_check_interval_ms = Column(Integer, nullable=False, default=30000)

    last_tested = Column(DateTime(timezone=True))
    test_status = Column(String(16), nullable=False, default="pending")

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    health_status = relationship(
        "ProviderHealth",
        back_populates="provider",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        Index("idx_provider_org_active", "organization_id", "is_active"),
        Index("idx_provider_org_type", "organization_id", "type"),
    )


class ProviderHealth(Base):
    """Provider health status tracking."""

    __tablename__ = "provider_health"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(
        String(64), ForeignKey("ai_providers.id"), unique=True, nullable=False
    )

    last_check = Column(DateTime(timezone=True))
    is_healthy = Column(Boolean, default=True, index=True)
    response_time_ms = Column(Float, default=0.0)
    error_rate = Column(Float, default=0.0)
    consecutive_failures = Column(Integer, default=0)
    terminal_failures = Column(Integer, default=0)
    last_error = Column(Text)

    provider = relationship("Provider", back_populates="health_status")
