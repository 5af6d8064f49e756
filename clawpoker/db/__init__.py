"""Database module for the PostgreSQL hand archive."""
from .connection import db, Database
from .models import init_db

__all__ = ["db", "Database", "init_db"]
