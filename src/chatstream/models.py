"""
Defines the core Pydantic data models for the application.

These models are the data contract between the transcript store, the stream
decoder, the transports and the presentation layer. Message shapes follow the
OpenAI chat completion conventions.
"""

from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal[USER_ROLE, ASSISTANT_ROLE]

DONE_SENTINEL = "[DONE]"


# --- Models ---
class ChatMessage(BaseModel):
    """Represents a single message within a transcript.

    A message has no id: its position in the transcript is its identity. The
    role is fixed at creation, while assistant content grows during streaming.
    """

    role: Role = Field(frozen=True)
    content: str = ""

    def as_api_dict(self) -> Dict[str, str]:
        """Convert to the shape expected by the chat completion endpoint."""
        return {"role": self.role, "content": self.content}


class Pricing(BaseModel):
    """Per-token prices for a model, as advertised by the catalog."""

    prompt: float = 0.0
    completion: float = 0.0


class ModelInfo(BaseModel):
    """Represents one entry of the model catalog."""

    id: str
    name: str = ""
    description: str = ""
    pricing: Pricing = Field(default_factory=Pricing)

    @property
    def label(self) -> str:
        return self.name or self.id


class StreamEvent(BaseModel):
    """A single decoded server-sent event."""

    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.data == DONE_SENTINEL


class SessionState(str, Enum):
    """Lifecycle states of one streamed request."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FAILED = "failed"
