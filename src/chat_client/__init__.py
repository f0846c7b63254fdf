"""Terminal chat client for an OpenAI-compatible completion service.

Each line typed at the prompt is sent, together with the conversation so
far, to the completion service. A ``Thinking...`` cue runs while the request
is in flight and the reply is then printed character by character. After
every turn the persisted user profile is revised by the service and either
accepted or rolled back to its backup.

Typical usage
-------------
chat-client --config config/default.yaml

or, without installing:

python scripts/run_chat.py
"""

from __future__ import annotations

from .completion import ChatClientError, CompletionClient, CompletionError
from .config import ConfigError, load_config
from .conversation import ConversationLog, Message, Role
from .profile import ProfileError, ProfileReconciler, ProfileStore, count_divergent_spans
from .terminal import ResponseRenderer, StopSignal, WaitIndicator
from .turn import TurnCoordinator

__all__ = [
    "ChatClientError",
    "CompletionClient",
    "CompletionError",
    "ConfigError",
    "ConversationLog",
    "Message",
    "ProfileError",
    "ProfileReconciler",
    "ProfileStore",
    "ResponseRenderer",
    "Role",
    "StopSignal",
    "TurnCoordinator",
    "WaitIndicator",
    "count_divergent_spans",
    "load_config",
    "__version__",
    "get_version",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__
