from .credential_pool import CredentialPool, RotationMode
from .error_handler import (
    ChatRequestError,
    NoCredentialsError,
    PoolExhaustedError,
    mask_credential,
)
from .orchestrator import RelayState, RetryOrchestrator
from .stream_reframer import StreamReframer
from .timeout_config import TimeoutConfig
from .types import (
    ChatMessage,
    ChatRequest,
    Delta,
    Done,
    Error,
    OutboundEvent,
    to_sse,
)
from .upstream_client import UpstreamClient

__all__ = [
    "CredentialPool",
    "RotationMode",
    "ChatRequestError",
    "NoCredentialsError",
    "PoolExhaustedError",
    "mask_credential",
    "RelayState",
    "RetryOrchestrator",
    "StreamReframer",
    "TimeoutConfig",
    "ChatMessage",
    "ChatRequest",
    "Delta",
    "Done",
    "Error",
    "OutboundEvent",
    "to_sse",
    "UpstreamClient",
]
