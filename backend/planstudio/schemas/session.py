"""Conversation turn schemas.

Turns are stored and replayed in the generation API's wire shape
(camelCase ``inlineData`` / ``mimeType``). Decoding also accepts the
snake_case spelling.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "model", "system"]


class InlineData(BaseModel):
    """Base64-encoded binary payload carried inside a turn."""
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(default="image/png", alias="mimeType")
    data: str


class Part(BaseModel):
    """One piece of turn content: text, inline binary, or both."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(default=None, alias="inlineData")
    thought: Optional[bool] = None

    @classmethod
    def from_bytes_b64(cls, data: str, mime_type: str = "image/png") -> "Part":
        return cls(inline_data=InlineData(mime_type=mime_type, data=data))


class Turn(BaseModel):
    """Role-tagged entry in a session history."""

    role: Role
    parts: List[Part] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
