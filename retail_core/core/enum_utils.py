"""
Enum Utilities for VARCHAR-based Status Fields

Database columns hold plain UPPERCASE strings (VARCHAR), Python code uses
``str, Enum`` classes for validation. These helpers convert between the two.

USAGE PATTERNS:
━━━━━━━━━━━━━━━
1. In SQLAlchemy Models:
   status: Mapped[str] = mapped_column(String(30), default="COMPLETED")

2. Writing from an enum or a string:
   sale.status = get_enum_value(SaleStatus.COMPLETED)

3. Lenient parsing of free-form input:
   method = parse_enum(PaymentMethod, "card")  # PaymentMethod.CARD
"""

from enum import Enum
from typing import Any, Optional, Type, TypeVar


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(SaleStatus.COMPLETED)
        'COMPLETED'
        >>> get_enum_value("COMPLETED")
        'COMPLETED'
        >>> get_enum_value(None)
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def normalize_to_uppercase(value: Any) -> Optional[str]:
    """Normalize free text to the stored UPPERCASE form ("store credit" -> "STORE_CREDIT")."""
    if value is None:
        return None
    text = get_enum_value(value).strip()
    if not text:
        return None
    return text.upper().replace(" ", "_").replace("-", "_")


def parse_enum(enum_class: Type[T], value: Any) -> Optional[T]:
    """Return the enum member matching ``value`` case-insensitively, or None."""
    normalized = normalize_to_uppercase(value)
    if normalized is None:
        return None
    try:
        return enum_class(normalized)
    except ValueError:
        return None
