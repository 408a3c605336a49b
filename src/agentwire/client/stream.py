"""Turn repeated growing-prefix text snapshots into minimal incremental output."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Literal

from agentwire.log_utils import log_event, log_stream_enabled

logger = logging.getLogger(__name__)

EmissionKind = Literal["init", "delta", "finish"]


@dataclass(frozen=True)
class Emission:
    kind: EmissionKind
    ts: int
    text: str = ""


@dataclass
class StreamTracker:
    last_text: str = ""
    active: bool = False
    complete: bool = False


class DeltaReconstructor:
    """Per-ts trackers for streamed message text.

    At most one ts is active at a time. Starting a new stream emits ``finish``
    for the previously active one; that message's own tracker keeps its text
    so a later snapshot for it still produces only the missing suffix.
    """

    def __init__(self) -> None:
        self._trackers: Dict[int, StreamTracker] = {}
        self._active_ts: int | None = None

    @property
    def active_ts(self) -> int | None:
        return self._active_ts

    def tracker(self, ts: int) -> StreamTracker | None:
        return self._trackers.get(ts)

    def on_snapshot(self, ts: int, text: str, partial: bool) -> List[Emission]:
        if log_stream_enabled():
            log_event(logger, "stream.snapshot", level=logging.DEBUG, ts=ts, size=len(text), partial=partial)

        tracker = self._trackers.get(ts)
        if tracker is None:
            return self._first(ts, text, partial)
        if tracker.complete:
            return []

        emissions: List[Emission] = []
        if len(text) > len(tracker.last_text) and text.startswith(tracker.last_text):
            if not tracker.active:
                emissions.extend(self._activate(ts, tracker))
            emissions.append(Emission("delta", ts, text[len(tracker.last_text) :]))
            tracker.last_text = text
        elif text != tracker.last_text:
            log_event(
                logger,
                "stream.non_extending",
                level=logging.DEBUG,
                ts=ts,
                tracked=len(tracker.last_text),
                received=len(text),
            )

        if not partial:
            tracker.complete = True
            if tracker.active:
                emissions.append(Emission("finish", ts))
                self._deactivate(ts, tracker)
        return emissions

    def finish_active(self) -> List[Emission]:
        """Close the active stream on the rendering side, if any."""
        if self._active_ts is None:
            return []
        ts = self._active_ts
        self._deactivate(ts, self._trackers[ts])
        return [Emission("finish", ts)]

    def reset(self) -> None:
        self._trackers.clear()
        self._active_ts = None

    def _first(self, ts: int, text: str, partial: bool) -> List[Emission]:
        if partial and not text:
            return []
        tracker = StreamTracker(last_text=text)
        self._trackers[ts] = tracker
        if not partial:
            tracker.complete = True
            return [Emission("init", ts, text)]
        emissions = self._activate(ts, tracker)
        emissions.append(Emission("init", ts, text))
        return emissions

    def _activate(self, ts: int, tracker: StreamTracker) -> List[Emission]:
        emissions = self.finish_active() if self._active_ts not in (None, ts) else []
        tracker.active = True
        self._active_ts = ts
        return emissions

    def _deactivate(self, ts: int, tracker: StreamTracker) -> None:
        tracker.active = False
        if self._active_ts == ts:
            self._active_ts = None


__all__ = ["DeltaReconstructor", "Emission", "EmissionKind", "StreamTracker"]
