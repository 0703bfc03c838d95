"""Synced inventory unit model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devcms.models.base import Base

if TYPE_CHECKING:
    from devcms.models.project import Project


class Unit(Base):
    """One flat from the last successful Realpad sync of a project.

    ``attributes``, ``resources`` and ``warnings`` are JSON-encoded.
    """

    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    building_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    floor_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    flat_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    attributes: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    resources: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    warnings: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    synced_at: Mapped[str] = mapped_column(Text, nullable=False)

    project: Mapped[Project] = relationship(back_populates="units")
