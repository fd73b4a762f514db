# src/relay_core/timeout_config.py
"""
Timeout configuration for upstream HTTP requests.

All values can be overridden via environment variables:
    TIMEOUT_ATTEMPT - Cap on waiting for the upstream response head (default: 30s)
    TIMEOUT_CONNECT - Connection establishment timeout (default: 30s)
    TIMEOUT_WRITE - Request body send timeout (default: 30s)
    TIMEOUT_POOL - Connection pool acquisition timeout (default: 60s)
    TIMEOUT_READ_STREAMING - Read timeout between streamed chunks (default: 180s)
"""

import logging
import os
from typing import Mapping, Optional

import httpx

lib_logger = logging.getLogger("relay_core")


class TimeoutConfig:
    """
    Timeout configuration for the upstream client.

    The attempt timeout bounds one upstream attempt up to the point where
    the response status is known; it does not cover the streamed body,
    whose reads are bounded separately by the read timeout.
    """

    _ATTEMPT = 30.0
    _CONNECT = 30.0
    _WRITE = 30.0
    _POOL = 60.0
    _READ_STREAMING = 180.0

    @classmethod
    def _get_env_float(
        cls, key: str, default: float, environ: Optional[Mapping[str, str]] = None
    ) -> float:
        """Get a float value from the environment, or return default."""
        env = os.environ if environ is None else environ
        value = env.get(key)
        if value is not None:
            try:
                parsed = float(value)
                if parsed > 0:
                    return parsed
            except ValueError:
                pass
            lib_logger.warning(
                f"Invalid value for {key}: {value}. Using default: {default}"
            )
        return default

    @classmethod
    def attempt(cls, environ: Optional[Mapping[str, str]] = None) -> float:
        """Per-attempt timeout in seconds."""
        return cls._get_env_float("TIMEOUT_ATTEMPT", cls._ATTEMPT, environ)

    @classmethod
    def streaming(cls, environ: Optional[Mapping[str, str]] = None) -> httpx.Timeout:
        """
        httpx timeouts for streaming chat requests.

        The read timeout is long since chunks may be sparse while a model
        is thinking; a stalled connection still surfaces as a read error.
        """
        return httpx.Timeout(
            connect=cls._get_env_float("TIMEOUT_CONNECT", cls._CONNECT, environ),
            read=cls._get_env_float(
                "TIMEOUT_READ_STREAMING", cls._READ_STREAMING, environ
            ),
            write=cls._get_env_float("TIMEOUT_WRITE", cls._WRITE, environ),
            pool=cls._get_env_float("TIMEOUT_POOL", cls._POOL, environ),
        )
