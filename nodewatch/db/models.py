from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    BigInteger,
    Boolean,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class EnrichmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class Snapshot(Base):
    """One observation of one address in one poll cycle. Rows are never updated."""

    __tablename__ = "node_snapshots"
    __table_args__ = (
        Index("ix_node_snapshots_address", "address"),
        Index("ix_node_snapshots_node_identity", "node_identity"),
        Index("ix_node_snapshots_captured_at", "captured_at"),
        Index("ix_node_snapshots_address_captured_at", "address", "captured_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(256), nullable=False)
    node_identity: Mapped[str | None] = mapped_column(String(256))
    is_reachable: Mapped[bool | None] = mapped_column(Boolean)
    version: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    # Node-reported, epoch seconds.
    last_observed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uptime_seconds: Mapped[int | None] = mapped_column(BigInteger)
    rpc_port: Mapped[int | None] = mapped_column(Integer)
    storage_committed: Mapped[int | None] = mapped_column(BigInteger)
    storage_used: Mapped[int | None] = mapped_column(BigInteger)
    storage_usage_percent: Mapped[float | None] = mapped_column(Float)
    # captured_at - last_observed_at, fixed at insert time.
    staleness_sec: Mapped[int] = mapped_column(BigInteger, nullable=False)
    captured_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class EnrichmentTask(Base):
    __tablename__ = "enrichment_tasks"
    __table_args__ = (
        Index("ix_enrichment_tasks_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    ip: Mapped[str] = mapped_column(String(45), nullable=False, unique=True)
    status: Mapped[EnrichmentStatus] = mapped_column(
        Enum(EnrichmentStatus, name="enrichment_status_enum"),
        nullable=False,
        default=EnrichmentStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    result: Mapped[dict | None] = mapped_column(JSON)
    enqueued_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
