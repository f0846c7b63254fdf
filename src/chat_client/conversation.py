"""In-process conversation log sent to the completion service each turn."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single conversation message. Immutable once created."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") but store the enum.
        object.__setattr__(self, "role", Role(self.role))

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationLog:
    """Append-only, ordered list of messages for one session.

    The first entry, if any, is the system prompt given at construction time.
    Further system messages cannot be appended, so it is never replaced or
    duplicated.
    """

    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._messages: List[Message] = []
        if system_prompt:
            self._messages.append(Message(Role.SYSTEM, system_prompt))

    # ---------- properties ----------

    @property
    def system_prompt(self) -> Optional[str]:
        if self._messages and self._messages[0].role is Role.SYSTEM:
            return self._messages[0].content
        return None

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    # ---------- public API ----------

    def append(self, role: Union[Role, str], content: str) -> Message:
        message = Message(Role(role), content)
        if message.role is Role.SYSTEM:
            raise ValueError("system prompt can only be set when the log is created")
        self._messages.append(message)
        return message

    def to_payload(self) -> List[Dict[str, str]]:
        """Snapshot of the log as ``{role, content}`` dicts."""
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))


def load_initial_prompt(path: PathLike) -> str:
    """Read the startup system prompt, or return ``""`` if it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Failed to read initial prompt from file %s: %s", path, e)
        return ""
