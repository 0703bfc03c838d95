"""Project model with Realpad configuration and sync status."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devcms.models.base import Base

if TYPE_CHECKING:
    from devcms.models.unit import Unit


class Project(Base):
    """Development project.

    ``realpad_password_ref`` holds a secret reference (``env:NAME`` or an
    encrypted token), never the plaintext password.
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    # Realpad configuration
    realpad_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    realpad_login: Mapped[str] = mapped_column(String, nullable=False, default="")
    realpad_password_ref: Mapped[str] = mapped_column(Text, nullable=False, default="")
    realpad_screen_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    realpad_project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    realpad_developer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    realpad_sync_frequency_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )

    # Sync status; a null status means the project was never synced.
    last_sync_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_sync_status: Mapped[str | None] = mapped_column(String, nullable=True)
    last_sync_error: Mapped[str] = mapped_column(Text, nullable=False, default="")

    units: Mapped[list[Unit]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
