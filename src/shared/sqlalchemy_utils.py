"""
SQLAlchemy helpers for converting ORM rows into plain data
"""

from typing import Any, Dict, Optional, Set

from sqlalchemy.inspection import inspect
from sqlalchemy.orm import DeclarativeBase

from src.shared.utils import get_logger

logger = get_logger(__name__)


def sqlalchemy_to_dict(
    obj: DeclarativeBase, exclude: Optional[Set[str]] = None
) -> Dict[str, Any]:
    """
    Convert a SQLAlchemy model instance to a dict of its column attributes.

    Only mapped columns are read, so no lazy load is ever triggered inside
    an async session.
    """
    if obj is None:
        return {}

    exclude = exclude or set()
    result = {}
    for attr in inspect(obj.__class__).column_attrs:
        if attr.key in exclude:
            continue
        try:
            result[attr.key] = getattr(obj, attr.key)
        except Exception as e:
            logger.warning(f"Error accessing column {attr.key}: {e}")
            result[attr.key] = None
    return result
