"""Ask/approval engine: surfaces engine asks once and answers each at most once."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Set

from agentwire.client.display import OutputSink
from agentwire.client.formatting import describe_mcp, describe_tool
from agentwire.client.messages import AskResponse, AskType, FollowupQuestion, Message, ask_response
from agentwire.client.prompts import INPUT_FAILURES, LineInput
from agentwire.config import DEFAULT_FOLLOWUP_TIMEOUT_S
from agentwire.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

Send = Callable[[Dict[str, Any]], Awaitable[None]]
AnsweredCallback = Callable[[Message, AskResponse], None]

YES_ANSWERS = {"y", "yes"}


class AskStatus(str, Enum):
    UNSEEN = "unseen"
    SURFACED = "surfaced"
    ANSWERED = "answered"


class AskEngine:
    """Tracks engine asks by ts and resolves them under one of two policies.

    Interactive: every surfaced ask prompts the human through ``line_input``.
    Non-interactive: the engine approves ordinary asks from its own settings,
    so they are only shown; ``followup`` still prompts, but races input
    against ``followup_timeout_s`` and falls back to the first suggestion.

    A ts enters the pending set on its first complete sighting and stays
    there until ``reset()``, so a re-delivered ask is never prompted twice.
    """

    def __init__(
        self,
        send: Send,
        sink: OutputSink,
        line_input: LineInput,
        *,
        interactive: bool = True,
        followup_timeout_s: float = DEFAULT_FOLLOWUP_TIMEOUT_S,
        on_answered: AnsweredCallback | None = None,
    ) -> None:
        self._send = send
        self._sink = sink
        self._input = line_input
        self._interactive = interactive
        self._followup_timeout_s = followup_timeout_s
        self._on_answered = on_answered
        self._pending: Set[int] = set()
        self._surfaced: Dict[int, Message] = {}
        self._answered: Dict[int, AskResponse] = {}
        self._tasks: Dict[int, asyncio.Task[None]] = {}
        self._prompt_lock = asyncio.Lock()

    @property
    def interactive(self) -> bool:
        return self._interactive

    @property
    def pending(self) -> frozenset[int]:
        return frozenset(self._pending)

    def status(self, ts: int) -> AskStatus:
        if ts in self._answered:
            return AskStatus.ANSWERED
        if ts in self._pending:
            return AskStatus.SURFACED
        return AskStatus.UNSEEN

    def answer_for(self, ts: int) -> AskResponse | None:
        return self._answered.get(ts)

    def outstanding(self) -> List[int]:
        return [ts for ts, task in self._tasks.items() if not task.done()]

    def observe(self, message: Message) -> None:
        """Inspect one message snapshot; surfaces the ask on its first complete sighting."""
        if not message.is_ask:
            return
        ts = message.ts
        ask_type = message.ask_type

        if ask_type == AskType.COMMAND_OUTPUT:
            if not message.partial and ts not in self._pending:
                self._surface(message)
                self._schedule(ts, self._answer(ts, AskResponse.approve()))
            return

        if message.partial or ts in self._pending:
            return
        if ask_type == AskType.COMPLETION_RESULT:
            return

        self._surface(message)
        if self._interactive:
            self._schedule(ts, self._interactive_handler(message))
        elif ask_type == AskType.FOLLOWUP:
            self._schedule(ts, self._followup(message, timeout_s=self._followup_timeout_s))
        else:
            self._show_auto_approved(message)

    async def respond(self, ts: int, response: AskResponse) -> bool:
        """Answer a surfaced ask from outside the policy (for example the facade).

        Asks that are not surfaced are left alone and False is returned.
        """
        status = self.status(ts)
        if status is not AskStatus.SURFACED:
            log_event(logger, "ask.respond_ignored", level=logging.WARNING, ts=ts, status=status.value)
            return False
        task = self._tasks.get(ts)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        return await self._answer(ts, response)

    async def cancel_outstanding(self) -> None:
        """Cancel every running prompt or timer without sending responses."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            log_event(logger, "ask.cancelled_outstanding", count=len(tasks))

    async def reset(self) -> None:
        await self.cancel_outstanding()
        self._pending.clear()
        self._surfaced.clear()
        self._answered.clear()
        self._tasks.clear()

    def _surface(self, message: Message) -> None:
        self._pending.add(message.ts)
        self._surfaced[message.ts] = message
        log_event(logger, "ask.surfaced", ts=message.ts, subtype=message.subtype, interactive=self._interactive)

    def _schedule(self, ts: int, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[ts] = task
        task.add_done_callback(lambda t, ts=ts: self._task_done(ts, t))

    def _task_done(self, ts: int, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(ts) is task:
            del self._tasks[ts]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(logger, "ask.handler_failed", level=logging.ERROR, ts=ts, error=str(exc))

    async def _answer(self, ts: int, response: AskResponse) -> bool:
        if ts in self._answered:
            log_event(logger, "ask.duplicate_answer", level=logging.DEBUG, ts=ts)
            return False
        self._answered[ts] = response
        with log_context(ask_ts=ts):
            log_event(logger, "ask.answered", kind=response.kind)
        await self._send(ask_response(response))
        message = self._surfaced.pop(ts, None)
        if self._on_answered is not None and message is not None:
            self._on_answered(message, response)
        return True

    def _show_auto_approved(self, message: Message) -> None:
        ask_type = message.ask_type
        text = message.text
        if ask_type == AskType.COMMAND:
            self._sink.write_line("[command]", text)
        elif ask_type == AskType.TOOL:
            if not text:
                return
            name, params = describe_tool(text)
            if name is None:
                self._sink.write_line("[tool]", text)
                return
            self._sink.write_line(f"[tool] {name}")
            for line in params:
                self._sink.write_line("", line)
        elif ask_type == AskType.BROWSER_ACTION_LAUNCH:
            self._sink.write_line("[browser action]", text)
        elif ask_type == AskType.USE_MCP_SERVER:
            server, _tool, _resource = describe_mcp(text)
            if server is None:
                self._sink.write_line("[mcp]", text)
            else:
                self._sink.write_line(f"[mcp] {server}")
        elif ask_type == AskType.API_REQ_FAILED:
            self._sink.write_line("[retrying api request]")
        elif ask_type in (AskType.RESUME_TASK, AskType.RESUME_COMPLETED_TASK):
            self._sink.write_line("[continuing task]")
        elif ask_type == AskType.MISTAKE_LIMIT_REACHED:
            self._sink.write_line("[mistake limit reached]", text)
        elif text:
            self._sink.write_line(f"[{message.subtype}]", text)

    def _interactive_handler(self, message: Message) -> Coroutine[Any, Any, None]:
        ask_type = message.ask_type
        text = message.text
        if ask_type == AskType.FOLLOWUP:
            return self._followup(message, timeout_s=None)
        if ask_type == AskType.COMMAND:
            lines = [("[command request]", ""), ("", f"  Command: {text or '(no command specified)'}")]
            return self._approval(message, lines, "Execute this command? (y/n): ")
        if ask_type == AskType.TOOL:
            name, params = describe_tool(text)
            lines = [(f"[tool request] {name or 'unknown'}", "")] + [("", line) for line in params]
            return self._approval(message, lines, "Approve this action? (y/n): ")
        if ask_type == AskType.BROWSER_ACTION_LAUNCH:
            lines = [("[browser action request]", "")]
            if text:
                lines.append(("", f"  Action: {text}"))
            return self._approval(message, lines, "Allow browser action? (y/n): ")
        if ask_type == AskType.USE_MCP_SERVER:
            server, tool, resource = describe_mcp(text)
            lines = [("[mcp request]", ""), ("", f"  Server: {server or 'unknown'}")]
            if tool:
                lines.append(("", f"  Tool: {tool}"))
            if resource:
                lines.append(("", f"  Resource: {resource}"))
            return self._approval(message, lines, "Allow MCP access? (y/n): ")
        if ask_type == AskType.API_REQ_FAILED:
            lines = [("[api request failed]", ""), ("", f"  Error: {text or 'Unknown error'}")]
            return self._approval(message, lines, "Retry the request? (y/n): ")
        if ask_type in (AskType.RESUME_TASK, AskType.RESUME_COMPLETED_TASK):
            title = "[resume completed task]" if ask_type == AskType.RESUME_COMPLETED_TASK else "[resume task]"
            lines = [(title, "")]
            if text:
                lines.append(("", f"  {text}"))
            return self._approval(message, lines, "Continue with this task? (y/n): ")
        lines = [(f"[ask] {message.subtype or 'unknown'}", "")]
        if text:
            lines.append(("", f"  {text}"))
        return self._approval(message, lines, "Approve? (y/n): ")

    async def _approval(self, message: Message, lines: List[tuple[str, str]], question: str) -> None:
        async with self._prompt_lock:
            if self.status(message.ts) is not AskStatus.SURFACED:
                return
            for header, text in lines:
                self._sink.write_line(header, text)
            try:
                answer = await self._input.ask(question)
            except INPUT_FAILURES:
                self._sink.write_line("[defaulting to: no]")
                await self._answer(message.ts, AskResponse.reject())
                return
            approved = answer.strip().lower() in YES_ANSWERS
            await self._answer(message.ts, AskResponse.approve() if approved else AskResponse.reject())

    async def _followup(self, message: Message, *, timeout_s: float | None) -> None:
        question = FollowupQuestion.from_text(message.text)
        async with self._prompt_lock:
            if self.status(message.ts) is not AskStatus.SURFACED:
                return
            self._sink.write_line("[question]", question.question or message.text)
            count = len(question.suggestions)
            if count:
                self._sink.write_line("Suggested answers:")
                for index, suggestion in enumerate(question.suggestions, start=1):
                    hint = f" (mode: {suggestion.mode})" if suggestion.mode else ""
                    self._sink.write_line("", f"  {index}. {suggestion.answer}{hint}")
            base = f"Enter number (1-{count}) or type your answer" if count else "Your answer"
            default = question.default_answer

            if timeout_s is None:
                try:
                    raw = await self._input.ask(f"{base}: ")
                except INPUT_FAILURES:
                    self._sink.write_line(f"[using default: {default or '(empty)'}]")
                    await self._answer(message.ts, AskResponse.with_text(default))
                    return
            else:
                result = await self._input.ask_with_timeout(
                    f"{base} (auto-select in {timeout_s:g}s): ", timeout_s, default
                )
                if result.timed_out or result.failed:
                    label = "timeout - using default" if result.timed_out else "using default"
                    self._sink.write_line(f"[{label}: {default or '(empty)'}]")
                    await self._answer(message.ts, AskResponse.with_text(default))
                    return
                raw = result.value

            answer = question.resolve_answer(raw)
            if answer != raw.strip():
                self._sink.write_line("", f"Selected: {answer}")
            await self._answer(message.ts, AskResponse.with_text(answer))


__all__ = ["AskEngine", "AskStatus", "YES_ANSWERS"]
