"""
Position Engine - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for durable position records.

TABLES:
- positions: one row per position, never deleted
- position_trades: ids of the trades recorded by a position

The in-memory position is the source of truth; these rows are
a mirror written by explicit backups.

============================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Declarative base for position engine models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


# ============================================================
# POSITION MODEL
# ============================================================

class PositionModel(Base):
    """
    Persisted position record.
    """

    __tablename__ = "positions"

    # Primary key, assigned on first insert
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Definition
    currency_pair: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))

    # State
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Rules
    stop_gain_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    stop_loss_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))

    # Orders
    open_order_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    close_order_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    # Price watermark
    lowest_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    highest_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow)

    # Relationships
    trades: Mapped[List["PositionTradeModel"]] = relationship(
        "PositionTradeModel",
        back_populates="position",
        cascade="all, delete-orphan",
        order_by="PositionTradeModel.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_positions_pair_status", "currency_pair", "status"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "currency_pair": self.currency_pair,
            "amount": str(self.amount) if self.amount is not None else None,
            "status": self.status,
            "open_order_id": self.open_order_id,
            "close_order_id": self.close_order_id,
            "trade_ids": [t.trade_id for t in self.trades],
        }


# ============================================================
# POSITION TRADE MODEL
# ============================================================

class PositionTradeModel(Base):
    """
    Trade id recorded by a position.
    """

    __tablename__ = "position_trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    position_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("positions.id"), nullable=False, index=True
    )
    trade_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    position: Mapped[PositionModel] = relationship("PositionModel", back_populates="trades")
