"""
Typed values flowing through the relay: inbound chat requests, per-attempt
outcomes and the outbound event vocabulary.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, StrictStr


# --- Inbound ---
class ChatMessage(BaseModel):
    """A single conversation message. Extra keys are forwarded untouched."""

    model_config = ConfigDict(extra="allow")

    role: StrictStr
    content: Union[StrictStr, List[Any]]


class ChatRequest(BaseModel):
    model: StrictStr
    messages: List[ChatMessage] = Field(min_length=1)

    def upstream_messages(self) -> List[Dict[str, Any]]:
        return [message.model_dump() for message in self.messages]


# --- Attempt outcomes ---
@dataclass
class Success:
    """The upstream accepted the request; `response` is an open stream."""

    response: httpx.Response


@dataclass
class RateLimited:
    pass


@dataclass
class Unauthorized:
    pass


@dataclass
class TransportError:
    message: str


@dataclass
class Timeout:
    pass


AttemptOutcome = Union[Success, RateLimited, Unauthorized, TransportError, Timeout]


def outcome_name(outcome: AttemptOutcome) -> str:
    """Short label for logs and metrics, e.g. "rate_limited"."""
    return {
        Success: "success",
        RateLimited: "rate_limited",
        Unauthorized: "unauthorized",
        TransportError: "transport_error",
        Timeout: "timeout",
    }[type(outcome)]


# --- Outbound events ---
@dataclass(frozen=True)
class Delta:
    text: str

    terminal = False

    def payload(self) -> Dict[str, Any]:
        return {"content": self.text, "done": False}


@dataclass(frozen=True)
class Done:
    terminal = True

    def payload(self) -> Dict[str, Any]:
        return {"content": "", "done": True}


@dataclass(frozen=True)
class Error:
    message: str

    terminal = True

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message}


OutboundEvent = Union[Delta, Done, Error]


def to_sse(event: OutboundEvent) -> str:
    """Render an outbound event as one server-sent event frame."""
    return f"data: {json.dumps(event.payload())}\n\n"
