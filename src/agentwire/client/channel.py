"""Engine channel contract plus an in-memory implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List

from agentwire.errors import ChannelClosed, NotReady
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

InboundCallback = Callable[[Any], None]
CloseCallback = Callable[[], None]


class EngineChannel:
    """Ordered, at-least-once message channel to an engine.

    The channel raises its readiness signal exactly once; ``send`` refuses
    with ``NotReady`` until then. Inbound envelopes (raw JSON text or decoded
    dicts) go to the callback registered with ``listen``, in arrival order.
    """

    def __init__(self) -> None:
        self._ready = asyncio.Event()
        self._listener: InboundCallback | None = None
        self._on_close: CloseCallback | None = None
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def mark_ready(self) -> None:
        if not self._ready.is_set():
            log_event(logger, "channel.ready")
            self._ready.set()

    def listen(self, callback: InboundCallback, *, on_close: CloseCallback | None = None) -> None:
        self._listener = callback
        self._on_close = on_close

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise ChannelClosed("engine channel is closed")
        if not self.is_ready:
            raise NotReady()
        log_event(logger, "channel.send", level=logging.DEBUG, type=message.get("type"))
        await self._write(message)

    async def close(self) -> None:
        self._mark_closed()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        log_event(logger, "channel.closed")
        if self._on_close is not None:
            self._on_close()

    async def _write(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _deliver(self, envelope: Any) -> None:
        if self._listener is None:
            log_event(logger, "channel.unrouted", level=logging.DEBUG)
            return
        self._listener(envelope)


class QueueChannel(EngineChannel):
    """In-process channel: outbound messages collect in ``sent``."""

    def __init__(self, *, ready: bool = False) -> None:
        super().__init__()
        self.sent: List[Dict[str, Any]] = []
        if ready:
            self.mark_ready()

    def deliver(self, envelope: Any) -> None:
        self._deliver(envelope)

    async def _write(self, message: Dict[str, Any]) -> None:
        self.sent.append(message)


__all__ = ["CloseCallback", "EngineChannel", "InboundCallback", "QueueChannel"]
