"""
Dialect lookup for repositories that emit dialect-specific SQL (upserts).
"""

from sqlalchemy.orm import Session


def get_dialect_name(session: Session) -> str:
    """Name of the dialect the session is bound to, e.g. ``postgresql`` or ``sqlite``."""
    return session.get_bind().dialect.name
