"""
Item and Intent Schemas

An inbound message is classified into exactly one IntentResult variant.
The variants form a tagged union on the ``intent`` field so AI responses are
decoded by the schema validator, never by probing which keys are present.

Enum fields are closed: an unknown priority, type or status fails validation
at decode time.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


MAX_CONTENT_LENGTH = 500
MAX_TAGS = 10
DEFAULT_CATEGORY = "personal"


# ============================================================================
# Enums
# ============================================================================

class ItemType(str, Enum):
    """Kind of stored item"""
    TASK = "task"
    IDEA = "idea"


class Priority(str, Enum):
    """Item priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class ItemStatus(str, Enum):
    """Lifecycle state of a stored item"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ============================================================================
# Field normalizers (shared with the query schemas)
# ============================================================================

def clamp_confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"confidence must be a number, got {value!r}")
    return max(0.0, min(1.0, score))


def parse_lenient_date(value: Any) -> Optional[date]:
    """ISO date (or datetime) string to date; anything unparseable is None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def normalize_tag(tag: Any) -> str:
    return "-".join(str(tag).strip().lower().split())


def _lower_enum_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ============================================================================
# Items
# ============================================================================

class ClassifiedItem(BaseModel):
    """
    A task or idea extracted from a message.

    Produced by the classifier and never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: ItemType = Field(validation_alias=AliasChoices("kind", "type"))
    content: str
    priority: Priority = Priority.NONE
    category: str = DEFAULT_CATEGORY
    deadline: Optional[date] = None
    tags: List[str] = Field(default_factory=list)
    confidence: float = 0.5

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v):
        return _lower_enum_value(v)

    @field_validator("content", mode="before")
    @classmethod
    def _normalize_content(cls, v):
        if v is None:
            raise ValueError("content is required")
        text = str(v).strip()[:MAX_CONTENT_LENGTH].strip()
        if not text:
            raise ValueError("content must not be empty")
        return text

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, v):
        if v is None or v == "":
            return Priority.NONE
        return _lower_enum_value(v)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v):
        if v is None or not str(v).strip():
            return DEFAULT_CATEGORY
        return str(v).strip().lower()

    @field_validator("deadline", mode="before")
    @classmethod
    def _normalize_deadline(cls, v):
        return parse_lenient_date(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        tags = [normalize_tag(t) for t in v]
        return [t for t in tags if t][:MAX_TAGS]

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        if v is None:
            return 0.5
        return clamp_confidence(v)


class InboundMessage(BaseModel):
    """One message from the channel, alive for a single pipeline run."""
    model_config = ConfigDict(frozen=True)

    text: str
    sender: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None


class StoredRecord(BaseModel):
    """A persisted item, owned by the record store."""
    id: int
    owner_id: str
    kind: ItemType
    content: str
    priority: Priority = Priority.NONE
    category: str = DEFAULT_CATEGORY
    deadline: Optional[date] = None
    tags: List[str] = Field(default_factory=list)
    status: ItemStatus = ItemStatus.PENDING
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Intent results (tagged union on "intent")
# ============================================================================

class _IntentBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: float

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        return clamp_confidence(v)

    @property
    def is_multi_intent(self) -> bool:
        return False


class ItemIntent(_IntentBase):
    """A single task or idea."""
    intent: Literal["task", "idea"]
    item: ClassifiedItem

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_item(cls, data):
        # Single classifications arrive flat: {"intent": "task", "content": ...}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["intent"] = _lower_enum_value(data.get("intent"))
        item = data.get("item")
        if item is None:
            item = {k: v for k, v in data.items() if k not in ("intent", "item")}
        if isinstance(item, dict):
            item = dict(item)
            item.setdefault("kind", data["intent"])
            if item.get("confidence") is None:
                item["confidence"] = data.get("confidence")
        data["item"] = item
        return data


class QueryIntent(_IntentBase):
    """The message is a question about stored items."""
    intent: Literal["query"] = "query"


class NoneIntent(_IntentBase):
    """Nothing actionable in the message."""
    intent: Literal["none"] = "none"


class MultiIntent(_IntentBase):
    """Several independent items found in one message."""
    intent: Literal["multi"] = "multi"
    items: List[ClassifiedItem] = Field(min_length=2)
    unclassified: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _inherit_confidence(cls, data):
        # Items without their own score take the envelope's
        if not isinstance(data, dict):
            return data
        items = data.get("items")
        if isinstance(items, list):
            data = dict(data)
            data["items"] = [
                {**item, "confidence": data.get("confidence")}
                if isinstance(item, dict) and item.get("confidence") is None
                else item
                for item in items
            ]
        return data

    @property
    def is_multi_intent(self) -> bool:
        return True


IntentResult = Annotated[
    Union[ItemIntent, QueryIntent, NoneIntent, MultiIntent],
    Field(discriminator="intent"),
]

_intent_adapter = TypeAdapter(IntentResult)


def decode_intent(payload: Any) -> Union[ItemIntent, QueryIntent, NoneIntent, MultiIntent]:
    """Decode an AI classification payload into an IntentResult.

    A multi envelope carrying a single item collapses to an ItemIntent.
    Raises pydantic.ValidationError on anything that does not fit the union.
    """
    if isinstance(payload, dict):
        payload = dict(payload)
        payload["intent"] = _lower_enum_value(payload.get("intent"))
        items = payload.get("items")
        if payload["intent"] == "multi" and isinstance(items, list) and len(items) == 1:
            only = items[0]
            if isinstance(only, dict):
                kind = _lower_enum_value(only.get("kind") or only.get("type"))
                payload = {
                    "intent": kind,
                    "item": only,
                    "confidence": payload.get("confidence", only.get("confidence")),
                }
    return _intent_adapter.validate_python(payload)
