"""Session facade: one object a front end drives to run tasks on an engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from agentwire.client.agent_state import SessionStateInfo
from agentwire.client.asks import AskEngine, AskStatus
from agentwire.client.channel import EngineChannel
from agentwire.client.display import OutputSink, RichSink
from agentwire.client.events import EventEmitter, Unsubscribe
from agentwire.client.messages import (
    AskResponse,
    AskType,
    Message,
    ResponseKind,
    TerminalOperation,
    cancel_task,
    clear_task,
    new_task,
    set_mode,
    terminal_operation,
    update_settings,
)
from agentwire.client.output import MessageRenderer
from agentwire.client.processor import MessageProcessor, TaskCompletion
from agentwire.client.prompts import LineInput, PromptToolkitInput
from agentwire.client.state_store import StateStore
from agentwire.config import ClientConfig, approval_settings
from agentwire.errors import AgentwireError, ChannelClosed, NotReady, TaskTimedOut
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskResult:
    success: bool
    reason: str
    message: Message | None = None
    cancelled: bool = False


class AgentSession:
    """Compose store, processor, renderer and ask engine over one channel.

    Inbound envelopes flow store -> renderer -> ask engine in arrival order.
    ``submit_task`` resolves when the task reaches a terminal state, is
    cancelled, or the hard ceiling passes (``TaskTimedOut``).
    """

    def __init__(
        self,
        channel: EngineChannel,
        *,
        config: ClientConfig | None = None,
        sink: OutputSink | None = None,
        line_input: LineInput | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._channel = channel
        self._sink = sink or RichSink()
        self._input = line_input or PromptToolkitInput()
        self._emitter = EventEmitter()
        self._store = StateStore()
        self._processor = MessageProcessor(self._store, self._emitter)
        self._renderer = MessageRenderer(
            self._sink,
            skip_first_user_message=self._config.skip_first_user_message,
            verbose=self._config.verbose,
        )
        self._asks = AskEngine(
            self._channel.send,
            self._sink,
            self._input,
            interactive=self._config.interactive,
            followup_timeout_s=self._config.followup_timeout_s,
            on_answered=self._on_answered,
        )
        self._completion: asyncio.Future[TaskResult] | None = None
        self._emitter.on("taskCompleted", self._on_task_completed)
        self._channel.listen(self.handle_message, on_close=self._on_channel_closed)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def asks(self) -> AskEngine:
        return self._asks

    @property
    def renderer(self) -> MessageRenderer:
        return self._renderer

    @property
    def task_running(self) -> bool:
        return self._completion is not None and not self._completion.done()

    def handle_message(self, raw: Any) -> None:
        touched = self._processor.handle(raw)
        latest = self._store.get_last_message()
        for message in touched:
            self._renderer.render(message)
            # An ask with later messages after it has already been answered.
            if latest is not None and message.ts == latest.ts:
                self._asks.observe(message)

    async def wait_until_ready(self, timeout_s: float | None = None) -> None:
        if timeout_s is None:
            await self._channel.wait_ready()
            return
        await asyncio.wait_for(self._channel.wait_ready(), timeout=timeout_s)

    async def submit_task(self, text: str, images: list[str] | None = None) -> TaskResult:
        if not self._channel.is_ready:
            raise NotReady("engine channel is not ready; await wait_until_ready() first")
        if self.task_running:
            raise AgentwireError("a task is already running")

        completion: asyncio.Future[TaskResult] = asyncio.get_running_loop().create_future()
        self._completion = completion
        await self._channel.send(update_settings(approval_settings(self._config.interactive, self._config.mode)))
        await self._channel.send(new_task(text, images))
        log_event(logger, "session.task_submitted", interactive=self._config.interactive, mode=self._config.mode)

        timeout_s = self._config.task_timeout_s
        try:
            result = await asyncio.wait_for(asyncio.shield(completion), timeout=timeout_s)
        except asyncio.TimeoutError:
            log_event(logger, "session.task_timeout", level=logging.ERROR, timeout_s=timeout_s)
            if not completion.done():
                completion.cancel()
            await self._asks.cancel_outstanding()
            raise TaskTimedOut(timeout_s) from None
        self._renderer.finish_active()
        log_event(logger, "session.task_finished", success=result.success, reason=result.reason)
        return result

    async def respond(self, kind: ResponseKind, text: str | None = None, ts: int | None = None) -> bool:
        """Answer the current ask (or the ask ``ts``). False when there is nothing to answer."""
        target = ts if ts is not None else self._current_ask_ts()
        if target is None:
            log_event(logger, "session.respond_without_ask", level=logging.WARNING, kind=kind)
            return False
        if kind == "text" and text is None:
            text = ""
        return await self._asks.respond(target, AskResponse(kind, text))

    async def approve(self) -> bool:
        return await self.respond("approve")

    async def reject(self) -> bool:
        return await self.respond("reject")

    async def answer(self, text: str) -> bool:
        return await self.respond("text", text)

    async def resume_task(self) -> bool:
        return await self.respond("approve")

    async def retry_api_request(self) -> bool:
        return await self.respond("approve")

    async def cancel(self) -> None:
        """Cancel the running task; outstanding prompts and timers end without responses."""
        await self._asks.cancel_outstanding()
        self._renderer.finish_active()
        if self._channel.is_ready and not self._channel.closed:
            await self._channel.send(cancel_task())
        self._resolve(TaskResult(success=False, reason="cancelled", cancelled=True))
        log_event(logger, "session.cancelled")

    async def clear_task(self) -> None:
        await self._asks.reset()
        self._renderer.reset()
        self._store.clear()
        if self._channel.is_ready and not self._channel.closed:
            await self._channel.send(clear_task())

    async def set_mode(self, mode: str) -> None:
        await self._channel.send(set_mode(mode))
        self._store.set_current_mode(mode)

    async def continue_terminal(self) -> None:
        await self._send_terminal_operation("continue")

    async def abort_terminal(self) -> None:
        await self._send_terminal_operation("abort")

    def get_state(self) -> SessionStateInfo:
        return self._store.get_agent_state()

    def get_messages(self) -> tuple[Message, ...]:
        return self._store.get_messages()

    def subscribe(self, fn: Callable[[SessionStateInfo], Any]) -> Unsubscribe:
        """Receive the current state now and every derived state change after."""
        return self._store.subscribe_to_agent_state(fn)

    def on(self, event: str, listener: Callable[..., Any]) -> Unsubscribe:
        return self._emitter.on(event, listener)

    async def reset(self) -> None:
        await self._asks.reset()
        self._renderer.reset()
        self._store.reset()
        self._resolve(TaskResult(success=False, reason="reset", cancelled=True))

    async def dispose(self) -> None:
        await self._asks.reset()
        self._renderer.finish_active()
        self._resolve(TaskResult(success=False, reason="disposed", cancelled=True))
        self._emitter.remove_all_listeners()
        await self._channel.close()

    async def _send_terminal_operation(self, operation: TerminalOperation) -> None:
        await self._channel.send(terminal_operation(operation))

    def _current_ask_ts(self) -> int | None:
        pending = self._store.get_pending_ask()
        if pending is not None and self._asks.status(pending.ts) is AskStatus.SURFACED:
            return pending.ts
        surfaced = [ts for ts in self._asks.pending if self._asks.status(ts) is AskStatus.SURFACED]
        return max(surfaced) if surfaced else None

    def _resolve(self, result: TaskResult) -> None:
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(result)

    def _on_task_completed(self, completion: TaskCompletion) -> None:
        message = completion.message
        ask_type = message.ask_type if message is not None else None
        if ask_type == AskType.COMPLETION_RESULT:
            self._resolve(TaskResult(success=True, reason="completed", message=message))
        elif ask_type == AskType.MISTAKE_LIMIT_REACHED:
            self._resolve(TaskResult(success=False, reason="mistake limit reached", message=message))

    def _on_answered(self, message: Message, response: AskResponse) -> None:
        if message.ask_type == AskType.API_REQ_FAILED and response.kind == "reject":
            self._resolve(TaskResult(success=False, reason="api request failed", message=message))

    def _on_channel_closed(self) -> None:
        if self._completion is not None and not self._completion.done():
            self._completion.set_exception(ChannelClosed("engine channel closed before the task finished"))


__all__ = ["AgentSession", "TaskResult"]
