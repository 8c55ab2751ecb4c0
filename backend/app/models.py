from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(80), unique=True, index=True)
    wallet_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Mutated only by the reward ledger.
    token_balance: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    properties = relationship("Property", back_populates="owner")


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)

    title: Mapped[str] = mapped_column(String(255), default="")
    location: Mapped[str] = mapped_column(String(255), default="")
    price: Mapped[float] = mapped_column(Float, default=0.0)
    description: Mapped[str] = mapped_column(Text, default="")
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    area_sqm: Mapped[float | None] = mapped_column(Float, nullable=True)
    # sha256 over the fingerprints of the listing's stored media (optional).
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    owner = relationship("User", back_populates="properties")
    media = relationship(
        "MediaUpload",
        back_populates="property",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MediaUpload.uploaded_at",
    )


class MediaUpload(Base):
    __tablename__ = "media_uploads"
    # The dedup gate: at most one original row per fingerprint. Duplicates
    # (is_original = false) may share the fingerprint freely.
    __table_args__ = (
        Index(
            "uq_media_uploads_original_content_hash",
            "content_hash",
            unique=True,
            postgresql_where=text("is_original"),
            sqlite_where=text("is_original = 1"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)
    file_path: Mapped[str] = mapped_column(String(512))  # relative uploads path or URL
    file_type: Mapped[str] = mapped_column(String(10))  # image | video
    content_hash: Mapped[str] = mapped_column(String(64), index=True)  # sha256 hex
    file_size: Mapped[int] = mapped_column(BigInteger, default=0)
    is_original: Mapped[bool] = mapped_column(Boolean, default=True)
    tokens_earned: Mapped[int] = mapped_column(BigInteger, default=0)
    original_filename: Mapped[str] = mapped_column(String(255), default="")
    content_type: Mapped[str] = mapped_column(String(100), default="")
    uploaded_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    property = relationship("Property", back_populates="media")


class TokenTransaction(Base):
    """
    Append-only ledger entry. One reward row per media item at most.
    """

    __tablename__ = "token_transactions"
    __table_args__ = (UniqueConstraint("media_id", name="uq_token_transactions_media_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)
    media_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("media_uploads.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[int] = mapped_column(BigInteger)
    transaction_type: Mapped[str] = mapped_column(String(40))  # upload_reward
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
