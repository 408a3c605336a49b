from __future__ import annotations

from agentwire.client.stream import DeltaReconstructor, Emission


def test_growing_snapshots_emit_init_deltas_and_finish() -> None:
    stream = DeltaReconstructor()

    emissions = []
    emissions += stream.on_snapshot(10, "Hel", True)
    emissions += stream.on_snapshot(10, "Hello", True)
    emissions += stream.on_snapshot(10, "Hello world", False)

    assert emissions == [
        Emission("init", 10, "Hel"),
        Emission("delta", 10, "lo"),
        Emission("delta", 10, " world"),
        Emission("finish", 10),
    ]
    assert stream.active_ts is None


def test_emitted_text_concatenates_to_final_text() -> None:
    stream = DeltaReconstructor()
    snapshots = ["I", "I am", "I am here", "I am here", "I am here now"]

    out = []
    for index, text in enumerate(snapshots):
        out += stream.on_snapshot(1, text, index < len(snapshots) - 1)

    assert "".join(e.text for e in out if e.kind in ("init", "delta")) == "I am here now"


def test_repeated_snapshot_emits_nothing() -> None:
    stream = DeltaReconstructor()
    stream.on_snapshot(1, "abc", True)

    assert stream.on_snapshot(1, "abc", True) == []


def test_complete_first_sighting_is_single_init_without_finish() -> None:
    stream = DeltaReconstructor()

    assert stream.on_snapshot(5, "done", False) == [Emission("init", 5, "done")]
    assert stream.active_ts is None
    assert stream.on_snapshot(5, "done", False) == []
    assert stream.on_snapshot(5, "done and more", False) == []


def test_empty_partial_defers_init() -> None:
    stream = DeltaReconstructor()

    assert stream.on_snapshot(1, "", True) == []
    assert stream.tracker(1) is None
    assert stream.on_snapshot(1, "Hi", True) == [Emission("init", 1, "Hi")]


def test_non_extending_snapshot_is_ignored() -> None:
    stream = DeltaReconstructor()
    stream.on_snapshot(1, "Hello", True)

    assert stream.on_snapshot(1, "Help", True) == []
    assert stream.tracker(1).last_text == "Hello"
    assert stream.on_snapshot(1, "Hello!", True) == [Emission("delta", 1, "!")]


def test_new_stream_finishes_previous_active_one() -> None:
    stream = DeltaReconstructor()
    stream.on_snapshot(1, "thinking", True)

    emissions = stream.on_snapshot(2, "answer", True)

    assert emissions == [Emission("finish", 1), Emission("init", 2, "answer")]
    assert stream.active_ts == 2


def test_reactivated_stream_emits_only_missing_suffix() -> None:
    stream = DeltaReconstructor()
    stream.on_snapshot(1, "abc", True)
    stream.on_snapshot(2, "x", True)

    emissions = stream.on_snapshot(1, "abcdef", False)

    assert emissions == [
        Emission("finish", 2),
        Emission("delta", 1, "def"),
        Emission("finish", 1),
    ]


def test_terminal_snapshot_without_growth_still_finishes() -> None:
    stream = DeltaReconstructor()
    stream.on_snapshot(1, "same", True)

    assert stream.on_snapshot(1, "same", False) == [Emission("finish", 1)]
    assert stream.tracker(1).complete


def test_finish_active_and_reset() -> None:
    stream = DeltaReconstructor()
    assert stream.finish_active() == []

    stream.on_snapshot(1, "a", True)
    assert stream.finish_active() == [Emission("finish", 1)]
    assert stream.finish_active() == []

    stream.reset()
    assert stream.tracker(1) is None
    assert stream.on_snapshot(1, "a", True) == [Emission("init", 1, "a")]
