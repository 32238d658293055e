"""Schema for dialogue-generation output."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from outreach_voice.services.agent.constants import DEFAULT_REPLY

logger = logging.getLogger(__name__)


class DialogueResponse(BaseModel):
    """The next agent line plus anything extracted from the caller's words."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    should_end_call: bool = Field(default=False, alias="shouldEndCall")
    extracted_data: Dict[str, Any] = Field(default_factory=dict, alias="extractedData")

    @field_validator("message")
    @classmethod
    def _strip_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be blank")
        return value

    @field_validator("extracted_data", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def default(cls) -> "DialogueResponse":
        return cls(message=DEFAULT_REPLY, should_end_call=False, extracted_data={})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class ParsedResponse:
    """Generation output that matched the schema."""

    response: DialogueResponse
    fallback: bool = False


@dataclass
class FallbackResponse:
    """Generation output was unusable; the canned default stands in."""

    response: DialogueResponse
    reason: str
    fallback: bool = True


GenerationResult = Union[ParsedResponse, FallbackResponse]


def parse_generation_output(content: Optional[str]) -> GenerationResult:
    """Decode generation output into a DialogueResponse. Never raises."""
    if not content or not content.strip():
        return FallbackResponse(DialogueResponse.default(), reason="empty output")
    try:
        return ParsedResponse(DialogueResponse.model_validate_json(content))
    except ValidationError as e:
        logger.warning(f"[AGENT] Generation output rejected by schema: {e.error_count()} error(s)")
        return FallbackResponse(DialogueResponse.default(), reason="schema mismatch")
