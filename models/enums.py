from enum import Enum
from typing import Optional

class Role(str, Enum):
    """Marketplace roles that take part in chat"""
    PLAYER = "player"
    PARENT = "parent"
    ACADEMY = "academy"
    CLINIC = "clinic"
    AGENT = "agent"  # customer support

    @classmethod
    def parse(cls, value) -> Optional["Role"]:
        """Parse a stored role string; anything unrecognised means no role"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def is_customer(self) -> bool:
        return self in (Role.PLAYER, Role.PARENT)

    @property
    def is_provider(self) -> bool:
        return self in (Role.ACADEMY, Role.CLINIC)

class BookingType(str, Enum):
    """Service type of a booking, always one of the provider roles"""
    ACADEMY = "academy"
    CLINIC = "clinic"

    @classmethod
    def for_provider(cls, role: Role) -> "BookingType":
        return cls(role.value)
