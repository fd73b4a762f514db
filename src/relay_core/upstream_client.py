import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .error_handler import mask_credential
from .timeout_config import TimeoutConfig
from .types import (
    AttemptOutcome,
    RateLimited,
    Success,
    Timeout,
    TransportError,
    Unauthorized,
)

lib_logger = logging.getLogger("relay_core")

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_REFERER = "http://localhost:5173"
DEFAULT_TITLE = "Chatbot App"


class UpstreamClient:
    """
    Issues one streaming chat-completion request per attempt and classifies
    the upstream's answer. The client never rotates credentials itself.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = DEFAULT_API_URL,
        referer: Optional[str] = DEFAULT_REFERER,
        title: Optional[str] = DEFAULT_TITLE,
        attempt_timeout: Optional[float] = None,
    ):
        self._client = client
        self.api_url = api_url
        self.referer = referer
        self.title = title
        self.attempt_timeout = (
            attempt_timeout if attempt_timeout is not None else TimeoutConfig.attempt()
        )

    def _build_headers(self, credential: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers

    async def attempt(
        self, credential: str, model: str, messages: List[Dict[str, Any]]
    ) -> AttemptOutcome:
        """
        Send the request and wait (bounded) for the response head.

        On success the returned response is still open; whoever consumes
        the body is responsible for closing it. Every other outcome has
        already released its connection.
        """
        request = self._client.build_request(
            "POST",
            self.api_url,
            headers=self._build_headers(credential),
            json={"model": model, "messages": messages, "stream": True},
        )

        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True),
                timeout=self.attempt_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            lib_logger.warning(
                f"Request timed out after {self.attempt_timeout}s for credential {mask_credential(credential)}"
            )
            return Timeout()
        except httpx.RequestError as e:
            lib_logger.error(f"API request error: {type(e).__name__}: {e}")
            return TransportError(str(e) or type(e).__name__)

        if response.status_code == 429:
            await response.aclose()
            return RateLimited()

        if response.status_code == 401:
            await response.aclose()
            return Unauthorized()

        if not response.is_success:
            # Preload the body so the error reason can be reported
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            return TransportError(
                f"Upstream API error: {response.status_code} - {body}"
            )

        return Success(response)
