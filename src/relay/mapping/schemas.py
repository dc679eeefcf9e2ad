"""Schemas for event-type configuration and field-mapping rules.

Mapping rules are a tagged variant discriminated on ``source_kind``:

- StaticRule: literal text value
- UserAttributeRule: value looked up from the user's attributes
- EventPayloadRule: value read from the fired event's payload

Any rule may carry an equality condition on a payload key. Rows are
validated at the settings-save boundary (see sanitize.py), so the resolver
only ever sees well-formed rules.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Scalar = Union[str, int, float, bool, None]


class SourceKind(str, Enum):
    """Where a mapped attribute's value comes from."""

    STATIC = "static"
    USER_ATTRIBUTE = "user_attribute"
    EVENT_PAYLOAD = "event_payload"


class _MappingRuleBase(BaseModel):
    """Fields shared by every mapping rule variant."""

    model_config = ConfigDict(frozen=True)

    output_key: str = Field(min_length=1)
    source_value: str = ""
    condition_key: str = ""
    condition_value: str = ""

    @property
    def is_conditional(self) -> bool:
        return self.condition_key != ""


class StaticRule(_MappingRuleBase):
    source_kind: Literal[SourceKind.STATIC] = SourceKind.STATIC


class UserAttributeRule(_MappingRuleBase):
    source_kind: Literal[SourceKind.USER_ATTRIBUTE] = SourceKind.USER_ATTRIBUTE


class EventPayloadRule(_MappingRuleBase):
    source_kind: Literal[SourceKind.EVENT_PAYLOAD] = SourceKind.EVENT_PAYLOAD


MappingRule = Annotated[
    Union[StaticRule, UserAttributeRule, EventPayloadRule],
    Field(discriminator="source_kind"),
]


class EventTypeConfig(BaseModel):
    """Admin configuration for one event type."""

    enabled: bool = False
    event_name: str
    mapping_rules: list[MappingRule] = Field(default_factory=list)


class IntegrationSettings(BaseModel):
    """Full settings document: one EventTypeConfig per catalogue key."""

    events: dict[str, EventTypeConfig] = Field(default_factory=dict)


class EventDefinition(BaseModel):
    """Built-in description of an event type."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    default_event: str
    description: str
    payload_keys: tuple[str, ...] = ()


class ResolvedFields(BaseModel):
    """Output of FieldResolver.resolve(): event name plus mapped attributes."""

    event_name: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class ResolvedEvent(BaseModel):
    """A fully computed event, ready for delivery. Immutable."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    event_name: str
    email: str
    payload: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)
    event_key: str = ""
