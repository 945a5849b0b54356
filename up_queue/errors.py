"""Error types and the shared error envelope.

We keep failure messages consistent between the sync adapter and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class StoreUnavailable(RuntimeError):
    """Reading from or writing to the external store failed.

    A command that hits this has no effect and must not be assumed applied.
    """


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    def to_message(self, *, command: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message}
        if command is not None:
            msg["command"] = command
        return msg
