# app/models.py
from sqlalchemy import Boolean, DateTime, Enum, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from datetime import datetime
from typing import Optional

from app.schemas.creators.tokencreate import CoinStatus


class Base(DeclarativeBase):
    pass


# ──────────────────────────────────────────────────────────────
# Launched coins (one row per fully confirmed launch)
# ──────────────────────────────────────────────────────────────

class Coin(Base):
    __tablename__ = "coins"

    contract_address: Mapped[str] = mapped_column(String, primary_key=True)
    created_by: Mapped[str] = mapped_column(String, index=True)

    # Token information
    name: Mapped[str] = mapped_column(String(32))
    ticker: Mapped[str] = mapped_column(String(10))
    description: Mapped[str] = mapped_column(Text, default="")
    image: Mapped[str] = mapped_column(String)
    ipfs_metadata: Mapped[str] = mapped_column(String)
    initial_buy_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Links
    x_link: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    website_link: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    telegram_link: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    category: Mapped[str] = mapped_column(String, default="meme")
    status: Mapped[CoinStatus] = mapped_column(Enum(CoinStatus), default=CoinStatus.ACTIVE)

    # Market metrics, zero at creation
    market_cap: Mapped[float] = mapped_column(Float, default=0.0)
    holders: Mapped[int] = mapped_column(Integer, default=0)
    volume_24h: Mapped[float] = mapped_column(Float, default=0.0)
    price_change_24h: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_coins_creator_created', "created_by", "created_at"),
        Index('ix_coins_status', "status"),
    )
