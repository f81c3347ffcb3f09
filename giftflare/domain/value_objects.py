"""Value objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Self

from giftflare.domain.exceptions import ValidationError


class DeliveryType(str, Enum):
    """How an order is fulfilled.

    INSTANT is only offered for seller/city pairs flagged for expedited
    courier fulfillment.
    """

    STANDARD = "standard"
    INSTANT = "instant"


# ============================================================================
# Addresses and Recipients
# ============================================================================


@dataclass(frozen=True)
class Address:
    """Postal address with an optional contact phone.

    The phone number is what the SMS channel sends to; an address
    without one simply gets no SMS.
    """

    line1: str
    city: str
    postal_code: str
    country: str = "IN"
    name: str | None = None
    line2: str | None = None
    state: str | None = None
    phone: str | None = None

    def __post_init__(self) -> None:
        """Validate required address fields."""
        for field_name in ("line1", "city", "postal_code", "country"):
            value = getattr(self, field_name)
            if not value or not value.strip():
                raise ValidationError(
                    f"Address {field_name} cannot be empty",
                    field=f"address.{field_name}",
                )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create from a dictionary produced by to_dict()."""
        return cls(
            line1=data["line1"],
            city=data["city"],
            postal_code=data["postal_code"],
            country=data.get("country", "IN"),
            name=data.get("name"),
            line2=data.get("line2"),
            state=data.get("state"),
            phone=data.get("phone"),
        )


@dataclass(frozen=True)
class Recipient:
    """Someone other than the buyer who receives a gift."""

    name: str
    address: Address
    phone: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        """Validate recipient name."""
        if not self.name or not self.name.strip():
            raise ValidationError("Recipient name cannot be empty", field="recipient.name")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "name": self.name,
            "address": self.address.to_dict(),
            "phone": self.phone,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create from a dictionary produced by to_dict()."""
        return cls(
            name=data["name"],
            address=Address.from_dict(data["address"]),
            phone=data.get("phone"),
            email=data.get("email"),
        )


@dataclass(frozen=True)
class GiftOptions:
    """Per-line gift options chosen in the cart.

    Attributes:
        gift_wrap: Whether the line is gift-wrapped (adds a packaging surcharge).
        note: Personal note printed with the gift.
        deliver_to_friend: Whether the line ships to someone else.
        recipient: The friend's details, when deliver_to_friend is set.
    """

    gift_wrap: bool = False
    note: str | None = None
    deliver_to_friend: bool = False
    recipient: Recipient | None = None

    def __post_init__(self) -> None:
        """Reject a recipient without the friend-delivery flag."""
        if self.recipient is not None and not self.deliver_to_friend:
            raise ValidationError(
                "A gift recipient requires deliver_to_friend to be set",
                field="gift.recipient",
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "gift_wrap": self.gift_wrap,
            "note": self.note,
            "deliver_to_friend": self.deliver_to_friend,
            "recipient": self.recipient.to_dict() if self.recipient else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create from a dictionary produced by to_dict()."""
        recipient = data.get("recipient")
        return cls(
            gift_wrap=data.get("gift_wrap", False),
            note=data.get("note"),
            deliver_to_friend=data.get("deliver_to_friend", False),
            recipient=Recipient.from_dict(recipient) if recipient else None,
        )


# ============================================================================
# Account Profile
# ============================================================================


@dataclass(frozen=True)
class Profile:
    """Account profile as returned by the profile directory."""

    user_id: str
    name: str
    email: str
    role: str = "buyer"
    city: str | None = None
