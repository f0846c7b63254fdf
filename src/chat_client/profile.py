"""Self-updating user profile with a divergence-bounded rollback.

After every turn the completion service is asked for a revised profile. The
revision is accepted only if it differs from the current profile by at most
``rollback_threshold`` non-equal diff spans; otherwise the backup profile is
restored over the current one.
"""
from __future__ import annotations

import difflib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .completion import ChatClientError, CompletionClient

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_PROFILE_PATH = "memories/userprofile.txt"
DEFAULT_BACKUP_PATH = "memories/userprofile_backup.txt"
DEFAULT_PROFILE_MODEL = "gpt-3.5-turbo-0125"
ROLLBACK_THRESHOLD = 200

# The revision request is not built from the live conversation yet.
PROFILE_REQUEST_MESSAGES: List[Dict[str, str]] = [
    {"role": "system", "content": "Profile_check"},
    {"role": "user", "content": "user_chat_log_content"},
]


class ProfileError(ChatClientError):
    """A profile file exists but cannot be decoded as UTF-8."""


# -----------------------------
# Helpers
# -----------------------------
def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ProfileError(f"Profile file {path} is not valid UTF-8: {e}") from e


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        # Temp files are created 0600; keep the mode of the file being replaced.
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def count_divergent_spans(current: str, revised: str) -> int:
    """Number of non-``equal`` opcodes in a character diff of the two texts."""
    # autojunk would discard frequent characters (spaces, 'e') in long documents.
    matcher = difflib.SequenceMatcher(None, current, revised, autojunk=False)
    return sum(1 for tag, *_ in matcher.get_opcodes() if tag != "equal")


# -----------------------------
# Storage
# -----------------------------
class ProfileStore:
    """The current profile and its backup, each a whole-file UTF-8 blob.

    The backup is only ever read here.
    """

    def __init__(self, path: PathLike = DEFAULT_PROFILE_PATH, backup_path: PathLike = DEFAULT_BACKUP_PATH) -> None:
        self.path = Path(path)
        self.backup_path = Path(backup_path)

    def read_current(self) -> str:
        return _read_text(self.path)

    def read_backup(self) -> str:
        return _read_text(self.backup_path)

    def write_current(self, text: str) -> None:
        _atomic_write_text(self.path, text)


# -----------------------------
# Reconciler
# -----------------------------
@dataclass
class ReconcileOutcome:
    accepted: bool
    divergent_spans: int
    content: str


class ProfileReconciler:
    """Asks the service for a revised profile and accepts or rolls it back."""

    def __init__(
        self,
        client: CompletionClient,
        store: ProfileStore,
        *,
        rollback_threshold: int = ROLLBACK_THRESHOLD,
        model: str = DEFAULT_PROFILE_MODEL,
        temperature: Optional[float] = 0,
        max_tokens: Optional[int] = 4000,
        messages: Optional[Sequence[Dict[str, str]]] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.rollback_threshold = rollback_threshold
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.messages = list(messages if messages is not None else PROFILE_REQUEST_MESSAGES)

    def decide(self, current: str, revised: str) -> ReconcileOutcome:
        """Accept ``revised`` unless it diverges by more than the threshold.

        On rollback the returned content is the backup's, read from disk.
        """
        spans = count_divergent_spans(current, revised)
        if spans > self.rollback_threshold:
            return ReconcileOutcome(accepted=False, divergent_spans=spans, content=self.store.read_backup())
        return ReconcileOutcome(accepted=True, divergent_spans=spans, content=revised)

    async def reconcile(self) -> ReconcileOutcome:
        current = self.store.read_current()
        revised = await self.client.complete(
            self.messages,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        outcome = self.decide(current, revised)
        self.store.write_current(outcome.content)

        if outcome.accepted:
            logger.info("Profile revision accepted (%d divergent spans)", outcome.divergent_spans)
        else:
            logger.warning(
                "Profile revision rejected (%d divergent spans > %d); restored backup from %s",
                outcome.divergent_spans,
                self.rollback_threshold,
                self.store.backup_path,
            )
        return outcome
