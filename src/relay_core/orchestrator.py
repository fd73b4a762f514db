import logging
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Iterable, Optional

from pydantic import ValidationError

from .credential_pool import CredentialPool
from .error_handler import (
    MISSING_KEY_REASON,
    RATE_LIMITED_REASON,
    TIMEOUT_REASON,
    UNAUTHORIZED_REASON,
    ChatRequestError,
    NoCredentialsError,
    build_exhaustion_message,
    mask_credential,
)
from .stream_reframer import StreamReframer
from .types import (
    AttemptOutcome,
    ChatRequest,
    Error,
    OutboundEvent,
    RateLimited,
    Success,
    Timeout,
    TransportError,
    Unauthorized,
)
from .upstream_client import UpstreamClient

lib_logger = logging.getLogger("relay_core")

MISSING_FIELDS_MESSAGE = (
    "Missing required fields: model and messages array are required"
)
INVALID_MESSAGE_MESSAGE = (
    "Invalid message format: each message needs a string role and content"
)
INVALID_MODEL_MESSAGE = "Invalid model selected"


class RelayState(str, Enum):
    VALIDATING = "validating"
    ATTEMPTING = "attempting"
    STREAMING = "streaming"
    TERMINATED = "terminated"


def _transition(current: RelayState, target: RelayState) -> RelayState:
    lib_logger.debug(f"Relay state: {current.value} -> {target.value}")
    return target


def failure_reason(outcome: AttemptOutcome) -> str:
    """The reason string recorded for a failed attempt."""
    if isinstance(outcome, RateLimited):
        return RATE_LIMITED_REASON
    if isinstance(outcome, Unauthorized):
        return UNAUTHORIZED_REASON
    if isinstance(outcome, Timeout):
        return TIMEOUT_REASON
    if isinstance(outcome, TransportError):
        return outcome.message or "Unknown error"
    raise ValueError(f"Not a failure outcome: {outcome!r}")


class RetryOrchestrator:
    """
    Drives one chat turn through validation, credential rotation and
    streaming.

    Every failed attempt before the first byte of a successful upstream
    stream is absorbed: the reason is recorded, the pool advances and the
    next credential is tried, up to one attempt per pooled credential.
    Only the final outcome reaches the caller, as exactly one terminal
    event at the end of the event sequence.
    """

    def __init__(
        self,
        pool: CredentialPool,
        upstream: UpstreamClient,
        allowed_models: Iterable[str],
        on_attempt: Optional[Callable[[AttemptOutcome], None]] = None,
    ):
        self.pool = pool
        self.upstream = upstream
        self.allowed_models = frozenset(allowed_models)
        self.on_attempt = on_attempt

    def validate(self, payload: Any) -> ChatRequest:
        """
        Check an inbound request body before any credential is touched.

        Raises ChatRequestError for a malformed body or disallowed model and
        NoCredentialsError when the pool is empty.
        """
        if not isinstance(payload, dict):
            raise ChatRequestError(MISSING_FIELDS_MESSAGE)

        model = payload.get("model")
        messages = payload.get("messages")
        if not model or not isinstance(model, str):
            raise ChatRequestError(MISSING_FIELDS_MESSAGE)
        if not isinstance(messages, list) or not messages:
            raise ChatRequestError(MISSING_FIELDS_MESSAGE)

        try:
            request = ChatRequest.model_validate(
                {"model": model, "messages": messages}
            )
        except ValidationError:
            raise ChatRequestError(INVALID_MESSAGE_MESSAGE)

        if request.model not in self.allowed_models:
            raise ChatRequestError(INVALID_MODEL_MESSAGE)

        if self.pool.size == 0:
            raise NoCredentialsError()

        return request

    def _record_attempt(self, outcome: AttemptOutcome) -> None:
        if self.on_attempt is None:
            return
        try:
            self.on_attempt(outcome)
        except Exception as e:
            lib_logger.warning(f"Attempt callback failed: {e}")

    async def stream_chat(
        self, request: ChatRequest
    ) -> AsyncGenerator[OutboundEvent, None]:
        """
        Yield the outbound events for one validated chat turn.

        The sequence is lazy and ends with exactly one Done or Error. If the
        consumer stops early (client disconnect) the open upstream response
        is closed.
        """
        if self.pool.size == 0:
            raise NoCredentialsError()

        state = _transition(RelayState.VALIDATING, RelayState.ATTEMPTING)
        max_attempts = self.pool.size
        attempt = 0
        last_reason = ""
        response = None
        messages = request.upstream_messages()

        while state is RelayState.ATTEMPTING:
            if attempt >= max_attempts:
                lib_logger.warning(
                    f"All {max_attempts} API keys exhausted. Last error: {last_reason}"
                )
                _transition(state, RelayState.TERMINATED)
                yield Error(build_exhaustion_message(last_reason))
                return

            observed = self.pool.cursor
            key = self.pool.current()
            if not key or not key.strip():
                outcome: AttemptOutcome = TransportError(MISSING_KEY_REASON)
            else:
                lib_logger.info(
                    f"Making API request upstream with model: {request.model} (attempt {attempt + 1}/{max_attempts})"
                )
                outcome = await self.upstream.attempt(key, request.model, messages)
            self._record_attempt(outcome)

            if isinstance(outcome, Success):
                response = outcome.response
                state = _transition(state, RelayState.STREAMING)
                continue

            last_reason = failure_reason(outcome)
            lib_logger.warning(
                f"{last_reason} on attempt {attempt + 1} with key {mask_credential(key)}, trying next key..."
            )
            self.pool.advance(observed)
            attempt += 1

        lib_logger.debug(f"Streaming response for model {request.model}")
        try:
            async for event in StreamReframer().reframe(response.aiter_bytes()):
                yield event
                if event.terminal:
                    break
        finally:
            _transition(state, RelayState.TERMINATED)
            await response.aclose()
