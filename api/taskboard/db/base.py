"""Import all models here for Alembic autogenerate."""

from taskboard.db.base_class import Base
from taskboard.models import automation, board  # noqa: F401

__all__ = ["Base"]
