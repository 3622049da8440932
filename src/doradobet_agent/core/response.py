"""
Canonical response returned to the upstream caller.

Exactly two wire shapes exist:

    {"type": "text", "data": {"message": "..."}}
    {"type": "json", "data": {"message": "...", "liveEvents": [...], "upcomingEvents": [...],
                              "status": "..."}}

Anything the model produces is reduced to one of these by :mod:`doradobet_agent.agent.output_normalizer`.
"""

import json
from typing import (
    Annotated,
    Any,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

EMPTY_OUTPUT_MESSAGE = "No pude generar una respuesta. Por favor intenta de nuevo."
REQUEST_FAILED_MESSAGE = "Hubo un problema procesando tu solicitud. Por favor intenta de nuevo."


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: item for key, item in value.items() if item is not None}
    return value


class SportEvent(BaseModel):
    """One event card shown by the client.  Every field is optional; nulls take the default."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    event_id: str = Field("", alias="eventId")
    name: str = ""
    start_date: str = Field("", alias="startDate")
    sport: str = ""
    league: str = ""
    category: str = ""
    url: str = ""
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def nulls_to_defaults(cls, value: Any) -> Any:
        return _drop_nulls(value)


class TextData(BaseModel):
    """Payload of a plain text response."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    message: str = ""

    @model_validator(mode="before")
    @classmethod
    def nulls_to_defaults(cls, value: Any) -> Any:
        return _drop_nulls(value)


class JsonData(BaseModel):
    """Payload of a structured response."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    message: str = ""
    live_events: Optional[List[SportEvent]] = Field(None, alias="liveEvents")
    upcoming_events: Optional[List[SportEvent]] = Field(None, alias="upcomingEvents")
    status: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def nulls_to_defaults(cls, value: Any) -> Any:
        return _drop_nulls(value)

    @field_validator("live_events", "upcoming_events", mode="before")
    @classmethod
    def event_cards_only(cls, value: Any) -> Any:
        # Entries that are not objects are dropped rather than rejecting the whole reply.
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, dict)]


class TextResponse(BaseModel):
    """``{"type": "text", ...}`` variant."""

    type: Literal["text"] = "text"
    data: TextData


class JsonResponse(BaseModel):
    """``{"type": "json", ...}`` variant."""

    type: Literal["json"] = "json"
    data: JsonData


CanonicalResponse = Annotated[Union[TextResponse, JsonResponse], Field(discriminator="type")]

canonical_adapter: TypeAdapter[CanonicalResponse] = TypeAdapter(CanonicalResponse)


def text_response(message: str) -> TextResponse:
    """Wrap *message* as a text response."""
    return TextResponse(data=TextData(message=message))


def to_wire(response: Union[TextResponse, JsonResponse]) -> dict:
    """Return the wire dict: camelCase keys, absent optionals omitted."""
    return response.model_dump(by_alias=True, exclude_none=True)


def serialize_response(response: Union[TextResponse, JsonResponse]) -> str:
    """Serialize to the JSON string sent over the wire."""
    return json.dumps(to_wire(response), ensure_ascii=False)
