"""
SQLAlchemy ORM models for persistent storage.

Printings are stored with their raw Scryfall payload so a catalog snapshot
can always be rebuilt from the database alone.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardPrintingDB(Base):
    """
    One printing of a card, as imported from Scryfall.

    identity_key holds the raw key (oracle id or derived key) for SQL-side
    grouping; cross-printing aliasing is applied when the catalog is loaded.
    """

    __tablename__ = "card_printings"

    printing_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    oracle_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    identity_key: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    set_code: Mapped[str] = mapped_column(String(16))

    # Raw Scryfall object; prices are patched in place on refresh
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<CardPrintingDB(printing_id={self.printing_id}, name={self.name})>"


class UserInteractionDB(Base):
    """
    A user's interaction with a card (view, favorite, search hit, deck add).

    user_id is supplied explicitly by the caller on every request.
    """

    __tablename__ = "user_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    card_key: Mapped[str] = mapped_column(String(255), index=True)
    interaction_type: Mapped[str] = mapped_column(String(32))
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<UserInteractionDB(user_id={self.user_id}, card_key={self.card_key})>"
