"""Command-line entry point: ``chat-client`` / ``python -m chat_client``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, TextIO

from .completion import ChatClientError, CompletionClient
from .config import load_api_key, load_config
from .conversation import ConversationLog, load_initial_prompt
from .profile import ProfileReconciler, ProfileStore
from .terminal import ResponseRenderer, WaitIndicator
from .turn import TurnCoordinator

logger = logging.getLogger("chat_client")

WELCOME = "Welcome to the Python Chatbot!"
VERBOSE_QUESTION = "Do you want verbose logging? (yes/no)"


# -----------------------------
# Wiring
# -----------------------------
def _make_client(cfg: Dict[str, Any], api_key: str) -> CompletionClient:
    api_cfg = cfg.get("api", {})
    timeout = api_cfg.get("timeout")
    return CompletionClient(
        api_key,
        base_url=str(api_cfg.get("base_url", "https://api.openai.com/v1")),
        model=str(cfg.get("chat", {}).get("model", "gpt-3.5-turbo")),
        timeout=float(timeout) if timeout is not None else None,
    )


def _make_reconciler(cfg: Dict[str, Any], client: CompletionClient) -> Optional[ProfileReconciler]:
    p = cfg.get("profile", {})
    if not p.get("enabled", True):
        return None
    store = ProfileStore(p.get("path", "memories/userprofile.txt"), p.get("backup_path", "memories/userprofile_backup.txt"))
    return ProfileReconciler(
        client,
        store,
        rollback_threshold=int(p.get("rollback_threshold", 200)),
        model=str(p.get("model", "gpt-3.5-turbo-0125")),
        temperature=p.get("temperature", 0),
        max_tokens=p.get("max_tokens", 4000),
    )


def build_coordinator(
    cfg: Dict[str, Any],
    api_key: str,
    *,
    stream: Optional[TextIO] = None,
    read_line: Optional[Callable[[str], str]] = None,
) -> TurnCoordinator:
    """Assemble a coordinator from a loaded configuration dict."""
    display = cfg.get("display", {})
    chat_cfg = cfg.get("chat", {})

    system_prompt = load_initial_prompt(chat_cfg.get("system_prompt_file", "system_prompts/prompt.md"))
    client = _make_client(cfg, api_key)

    return TurnCoordinator(
        client,
        ConversationLog(system_prompt),
        indicator=WaitIndicator(
            stream,
            label=str(display.get("thinking_label", "Thinking")),
            interval=float(display.get("frame_interval", 0.1)),
            frame_count=int(display.get("frame_count", 6)),
        ),
        renderer=ResponseRenderer(
            stream,
            label=str(display.get("reply_label", "Bot: ")),
            delay=float(display.get("char_delay", 0.01)),
        ),
        reconciler=_make_reconciler(cfg, client),
        reconcile_fatal=bool(cfg.get("profile", {}).get("fatal_errors", True)),
        read_line=read_line or input,
        prompt_label=str(display.get("user_label", "You: ")),
    )


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )
    # httpx/httpcore log every request at INFO/DEBUG.
    noisy = logging.DEBUG if verbose else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(noisy)


def _ask_verbose() -> bool:
    print(VERBOSE_QUESTION)
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip().lower() == "yes"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with a completion service from the terminal.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config file (default: $CHAT_CLIENT_CONFIG or config/default.yaml)",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--verbose",
        action="store_true",
        help="Log requests and response statuses to stderr without asking",
    )
    group.add_argument(
        "--quiet-start",
        action="store_true",
        help="Skip the verbose logging question and keep logging quiet",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        api_key = load_api_key()
        cfg = load_config(args.config)
    except ChatClientError as e:
        logger.error("%s", e)
        return 1

    print(WELCOME)
    verbose = args.verbose or (not args.quiet_start and _ask_verbose())
    if verbose and not args.verbose:
        setup_logging(True)

    coordinator = build_coordinator(cfg, api_key)
    try:
        asyncio.run(coordinator.run())
    except KeyboardInterrupt:
        print()
        logger.info("Interrupted after %d turn(s)", coordinator.turns)
        return 130
    except (ChatClientError, OSError) as e:
        logger.error("Turn failed: %s", e, exc_info=verbose)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
