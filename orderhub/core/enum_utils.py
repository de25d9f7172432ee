"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE STANDARD:
━━━━━━━━━━━━━━━━━
• Database: VARCHAR(50) - NOT a native database ENUM
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: OrderStatus.PLACED → "PLACED" → VARCHAR

OUTPUT (API Response):
    Database → String → Return directly

USAGE PATTERNS:
━━━━━━━━━━━━━━━
1. In SQLAlchemy Models:
   status: Mapped[str] = mapped_column(String(50), comment=enum_comment(OrderStatus))

2. When writing an enum that may already be a string:
   order.status = get_enum_value(new_status)

3. When reading a database string back for logic:
   current = to_enum(order.status, OrderStatus)
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(OrderStatus.PLACED)
        'PLACED'
        >>> get_enum_value("PLACED")
        'PLACED'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance.

    Values are matched case-insensitively since all enum values are
    stored in uppercase. Unknown values return None.

    Examples:
        >>> to_enum("placed", OrderStatus)
        OrderStatus.PLACED
        >>> to_enum("INVALID", OrderStatus)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(str(value).strip().upper())
    except (ValueError, KeyError):
        return None


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """
    Generate a comment string for a VARCHAR column.

    Examples:
        >>> enum_comment(CashbackTransactionType)
        'EARNED, USED'
    """
    return ", ".join(enum_values(enum_class))
