"""Database engine and repository for Heat Planner."""

from heat_planner.db.engine import close_db, init_db
from heat_planner.db.repository import Repository

__all__ = ["close_db", "init_db", "Repository"]
