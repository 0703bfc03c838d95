"""SQLAlchemy ORM models for devcms."""

from devcms.models.base import Base
from devcms.models.media import MediaRecord
from devcms.models.project import Project
from devcms.models.unit import Unit

__all__ = [
    "Base",
    "MediaRecord",
    "Project",
    "Unit",
]
