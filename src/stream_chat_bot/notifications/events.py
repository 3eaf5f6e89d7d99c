"""Canonical platform event models."""

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

Platform = Literal["tiktok", "twitch", "youtube"]


class EventType(str, Enum):
    CHAT = "chat"
    FOLLOW = "follow"
    SHARE = "share"
    PAYPIGGY = "paypiggy"
    GIFTPAYPIGGY = "giftpaypiggy"
    GIFT = "gift"
    ENVELOPE = "envelope"
    RAID = "raid"
    REDEMPTION = "redemption"
    FAREWELL = "farewell"
    GREETING = "greeting"


MONETIZATION_TYPES = frozenset({"gift", "paypiggy", "giftpaypiggy", "envelope"})


class BaseEvent(BaseModel):
    """
    Fields every canonical event carries.

    Adapters may attach extra fields; they are kept and passed downstream.
    Error notifications (is_error=True) relax the identity requirements.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    platform: Platform
    id: Optional[str] = Field(None, alias="id")
    user_id: Optional[str] = Field(None, alias="userId")
    username: Optional[str] = Field(None, alias="username")
    message: str = Field("", alias="message")
    timestamp: str = Field(..., alias="timestamp")
    is_error: bool = Field(False, alias="isError")

    @model_validator(mode="after")
    def check_identity(self) -> "BaseEvent":
        if self.is_error:
            return self
        if not self.user_id:
            raise ValueError("userId is required")
        if not self.username or not self.username.strip():
            raise ValueError("username is required")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatEvent(BaseEvent):
    type: Literal["chat"] = "chat"


class FollowEvent(BaseEvent):
    type: Literal["follow"] = "follow"


class ShareEvent(BaseEvent):
    type: Literal["share"] = "share"


class GreetingEvent(BaseEvent):
    type: Literal["greeting"] = "greeting"


class FarewellEvent(BaseEvent):
    type: Literal["farewell"] = "farewell"


class PaypiggyEvent(BaseEvent):
    """Subscription or membership."""

    type: Literal["paypiggy"] = "paypiggy"
    tier: Optional[str] = Field(None, alias="tier")
    months: int = Field(1, alias="months", ge=0)
    is_renewal: Optional[bool] = Field(None, alias="isRenewal")
    membership_level: Optional[str] = Field(None, alias="membershipLevel")


class GiftPaypiggyEvent(BaseEvent):
    """Gifted subscriptions."""

    type: Literal["giftpaypiggy"] = "giftpaypiggy"
    gift_count: int = Field(1, alias="giftCount")
    tier: Optional[str] = Field(None, alias="tier")
    cumulative_total: Optional[int] = Field(None, alias="cumulativeTotal")
    is_anonymous: Optional[bool] = Field(None, alias="isAnonymous")

    @model_validator(mode="after")
    def check_gift_count(self) -> "GiftPaypiggyEvent":
        if not self.is_error and self.gift_count <= 0:
            raise ValueError("giftpaypiggy requires giftCount >= 1")
        return self


class GiftEvent(BaseEvent):
    """Bits, super chats, stickers and coin gifts."""

    type: Literal["gift"] = "gift"
    gift_type: Optional[str] = Field(None, alias="giftType")
    gift_count: int = Field(0, alias="giftCount")
    amount: float = Field(0, alias="amount")
    currency: Optional[str] = Field(None, alias="currency")
    repeat_count: Optional[int] = Field(None, alias="repeatCount")
    tier: Optional[str] = Field(None, alias="tier")
    is_aggregated: bool = Field(False, alias="isAggregated")

    @model_validator(mode="after")
    def check_amounts(self) -> "GiftEvent":
        if self.is_error:
            return self
        if not self.id:
            raise ValueError(f"{self.type} requires a non-empty id")
        if not self.gift_type or not self.gift_type.strip():
            raise ValueError(f"{self.type} requires giftType")
        if self.gift_count <= 0:
            raise ValueError(f"{self.type} requires giftCount > 0")
        if self.amount <= 0:
            raise ValueError(f"{self.type} requires amount > 0")
        if not self.currency:
            raise ValueError(f"{self.type} requires currency")
        return self


class EnvelopeEvent(GiftEvent):
    """Treasure-chest gift."""

    type: Literal["envelope"] = "envelope"
    original_envelope_data: Any = Field(None, alias="originalEnvelopeData")


class RaidEvent(BaseEvent):
    type: Literal["raid"] = "raid"
    viewer_count: int = Field(..., alias="viewerCount", ge=0)


class RedemptionEvent(BaseEvent):
    type: Literal["redemption"] = "redemption"
    reward_title: str = Field(..., alias="rewardTitle", min_length=1)
    reward_cost: int = Field(..., alias="rewardCost", ge=0)


CanonicalEvent = Annotated[
    Union[
        ChatEvent,
        FollowEvent,
        ShareEvent,
        GreetingEvent,
        FarewellEvent,
        PaypiggyEvent,
        GiftPaypiggyEvent,
        GiftEvent,
        EnvelopeEvent,
        RaidEvent,
        RedemptionEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(CanonicalEvent)


def build_event(data: Dict[str, Any]) -> BaseEvent:
    """
    Validate a dict into the matching canonical event model.

    Raises:
        pydantic.ValidationError: Missing or invalid fields for the type
    """
    return _event_adapter.validate_python(data)
