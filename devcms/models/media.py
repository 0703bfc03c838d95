"""Cached media model."""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from devcms.models.base import Base


class MediaRecord(Base):
    """Binary resource cached from Realpad, keyed by its immutable external UID."""

    __tablename__ = "media"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_uid: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False, default="other")
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
