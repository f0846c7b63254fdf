"""One request/response cycle per line of user input."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .completion import ChatClientError, CompletionClient
from .conversation import ConversationLog, Role
from .profile import ProfileReconciler
from .terminal import ResponseRenderer, StopSignal, WaitIndicator

logger = logging.getLogger(__name__)

ReadLine = Callable[[str], str]


class TurnCoordinator:
    """Owns the conversation log and drives the turn loop.

    Per turn: append the user's text (unless blank), start the wait
    indicator, send the whole log, stop the indicator and wait for it to
    finish, render the reply, append it (unless blank), then reconcile the
    user profile.

    A failed completion request propagates and ends the loop. Profile
    reconciliation failures propagate too unless ``reconcile_fatal`` is False,
    in which case they are logged and the turn still succeeds.
    """

    def __init__(
        self,
        client: CompletionClient,
        log: Optional[ConversationLog] = None,
        *,
        indicator: Optional[WaitIndicator] = None,
        renderer: Optional[ResponseRenderer] = None,
        reconciler: Optional[ProfileReconciler] = None,
        reconcile_fatal: bool = True,
        read_line: ReadLine = input,
        prompt_label: str = "You: ",
    ) -> None:
        self.client = client
        self.log = log if log is not None else ConversationLog()
        self.indicator = indicator or WaitIndicator()
        self.renderer = renderer or ResponseRenderer()
        self.reconciler = reconciler
        self.reconcile_fatal = reconcile_fatal
        self.read_line = read_line
        self.prompt_label = prompt_label
        self.turns = 0

    async def request(self) -> str:
        """Send the current log while the wait indicator runs."""
        signal = StopSignal()
        animation = asyncio.create_task(self.indicator.run(signal))
        try:
            return await self.client.complete(self.log.messages)
        finally:
            signal.fire()
            await animation

    async def run_turn(self, text: str) -> str:
        user_text = text.strip()
        if user_text:
            self.log.append(Role.USER, user_text)

        reply = await self.request()

        await self.renderer.render(reply)
        if reply.strip():
            self.log.append(Role.ASSISTANT, reply)
        self.turns += 1

        if self.reconciler is not None:
            await self._reconcile()
        return reply

    async def _reconcile(self) -> None:
        try:
            await self.reconciler.reconcile()
        except (ChatClientError, OSError) as e:
            if self.reconcile_fatal:
                raise
            logger.warning("Profile reconciliation failed: %s", e)

    async def run(self) -> int:
        """Read and answer lines until end of input. Returns the turn count."""
        while True:
            try:
                line = self.read_line(self.prompt_label)
            except EOFError:
                logger.info("End of input after %d turn(s)", self.turns)
                return self.turns
            await self.run_turn(line)
