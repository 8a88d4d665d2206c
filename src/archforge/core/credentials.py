"""
Scoped credential handling.

Passwords are kept in mutable buffers that are zeroed as soon as the
step that needs them finishes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class Credential:
    """A secret held in a bytearray that can be wiped in place."""

    def __init__(self, secret: bytes | bytearray) -> None:
        self._buffer = bytearray(secret)
        self._wiped = False

    @classmethod
    def from_str(cls, value: str) -> Credential:
        return cls(value.encode("utf-8"))

    @property
    def is_empty(self) -> bool:
        return len(self._buffer) == 0

    @property
    def wiped(self) -> bool:
        return self._wiped

    def chpasswd_line(self, username: str) -> bytearray:
        """Build a ``user:password`` line for chpasswd. Caller must wipe it."""
        if self._wiped:
            raise ValueError("Credential has already been wiped")
        line = bytearray(username.encode("utf-8"))
        line += b":"
        line += self._buffer
        line += b"\n"
        return line

    def wipe(self) -> None:
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = bytearray()
        self._wiped = True

    def __enter__(self) -> Credential:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return "Credential(**********)" if not self._wiped else "Credential(<wiped>)"


def wipe_buffer(buffer: bytearray) -> None:
    """Zero a temporary buffer built from a credential."""
    for i in range(len(buffer)):
        buffer[i] = 0


@dataclass
class InstallCredentials:
    """Passwords for the accounts created in the target system."""

    root: Credential
    user: Credential | None = None

    def wipe(self) -> None:
        self.root.wipe()
        if self.user is not None:
            self.user.wipe()

    def __enter__(self) -> InstallCredentials:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.wipe()
