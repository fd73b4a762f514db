import logging
from datetime import datetime
from typing import Any, Optional, Tuple


def log_request_to_console(client_info: Optional[Tuple[str, int]], request_data: Any):
    """
    Logs a concise, single-line summary of an incoming chat request.
    Message contents are never logged.
    """
    time_str = datetime.now().strftime("%H:%M")
    host, port = client_info if client_info else ("unknown", 0)

    model = "N/A"
    message_count = 0
    if isinstance(request_data, dict):
        model = request_data.get("model") or "N/A"
        messages = request_data.get("messages")
        if isinstance(messages, list):
            message_count = len(messages)

    logging.info(
        f"{time_str} - {host}:{port} - Received request for model: {model} ({message_count} messages)"
    )
