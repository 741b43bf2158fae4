from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _PlatformModel(BaseModel):
    """Base for Dialogflow payloads: camelCase aliases, unknown fields ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OutputContext(_PlatformModel):
    """Dialogflow context carried between turns."""
    name: str
    lifespan_count: Optional[int] = Field(default=None, alias="lifespanCount")
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("parameters", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        # Dialogflow sends null for an empty parameter map.
        return {} if value is None else value


class QueryResult(_PlatformModel):
    """Subset of the Dialogflow queryResult used for fulfillment."""
    query_text: str = Field(default="", alias="queryText")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    output_contexts: List[OutputContext] = Field(default_factory=list, alias="outputContexts")
    language_code: str = Field(default="", alias="languageCode")

    @field_validator("parameters", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("output_contexts", mode="before")
    @classmethod
    def none_as_no_contexts(cls, value: Any) -> Any:
        return [] if value is None else value


class PlatformEvent(_PlatformModel):
    """Chip/button click event forwarded in the original request payload."""
    name: str = ""
    language_code: str = Field(default="", alias="languageCode")
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("parameters", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class OriginalRequestPayload(_PlatformModel):
    event: Optional[PlatformEvent] = None


class OriginalDetectIntentRequest(_PlatformModel):
    source: str = ""
    payload: OriginalRequestPayload = Field(default_factory=OriginalRequestPayload)


class WebhookRequest(_PlatformModel):
    """Inbound Dialogflow ES fulfillment request."""
    session: str = ""
    response_id: str = Field(default="", alias="responseId")
    query_result: QueryResult = Field(default_factory=QueryResult, alias="queryResult")
    original_detect_intent_request: OriginalDetectIntentRequest = Field(
        default_factory=OriginalDetectIntentRequest,
        alias="originalDetectIntentRequest",
    )


class EventInput(_PlatformModel):
    """Event fired by a chip option so the next turn resolves by id."""
    name: str
    language_code: str = Field(default="vi", alias="languageCode")
    parameters: Dict[str, str] = Field(default_factory=dict)


class ChipOption(_PlatformModel):
    text: str
    event: EventInput


class DescriptionBlock(_PlatformModel):
    type: Literal["description"] = "description"
    title: str = ""
    text: List[str] = Field(default_factory=list)


class ChipsBlock(_PlatformModel):
    type: Literal["chips"] = "chips"
    options: List[ChipOption] = Field(default_factory=list)


ContentBlock = Union[DescriptionBlock, ChipsBlock]
