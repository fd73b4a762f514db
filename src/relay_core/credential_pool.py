import logging
from enum import Enum
from typing import List, Optional, Sequence

from .error_handler import PoolExhaustedError, mask_credential

lib_logger = logging.getLogger("relay_core")


class RotationMode(str, Enum):
    """
    How concurrent requests share the rotation cursor.

    SHARED: every failed attempt advances the one process-wide cursor.
    Interleaved requests may start on the same credential, and a request
    may see a credential twice or skip one while others are failing too.

    GUARDED: an attempt only advances the cursor if it still points at the
    index that attempt read. A failure observed late by one request never
    pushes the cursor past a credential another request already rotated to.
    """

    SHARED = "shared"
    GUARDED = "guarded"


class CredentialPool:
    """
    Ordered set of upstream credentials with a rotating cursor.

    The pool is created once at startup and handed to whoever needs it.
    Credentials are kept exactly as configured: no deduplication and no
    health tracking across requests.
    """

    def __init__(
        self,
        credentials: Sequence[str],
        mode: RotationMode = RotationMode.SHARED,
    ):
        self._credentials: List[str] = list(credentials)
        self._cursor = 0
        self.mode = RotationMode(mode)

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def size(self) -> int:
        return len(self._credentials)

    @property
    def cursor(self) -> int:
        return self._cursor

    def current(self) -> str:
        """Return the credential at the cursor."""
        if not self._credentials:
            raise PoolExhaustedError("No credentials in pool")
        key = self._credentials[self._cursor]
        lib_logger.info(f"Using API key: {mask_credential(key)}")
        return key

    def advance(self, observed: Optional[int] = None) -> None:
        """
        Move the cursor to the next credential, wrapping at the end.

        `observed` is the cursor index the caller read before its attempt.
        It only matters in GUARDED mode, where a stale index leaves the
        cursor alone.
        """
        if not self._credentials:
            return
        if (
            self.mode is RotationMode.GUARDED
            and observed is not None
            and observed != self._cursor
        ):
            lib_logger.debug(
                f"Cursor already moved from {observed} to {self._cursor}; not advancing."
            )
            return
        self._cursor = (self._cursor + 1) % len(self._credentials)
        lib_logger.info(f"Advanced to key index: {self._cursor}")

    def masked(self) -> List[str]:
        return [mask_credential(key) for key in self._credentials]
