from __future__ import annotations

from typing import List, Sequence, Tuple

import pytest

from optolink.encoding import bits_to_runs, frame_message, runs_to_levels, runs_to_ticks
from optolink.rx.config import load_config
from optolink.rx.linecode import (
    END_WORD,
    LOCK_WORD,
    DecodedEvent,
    EventKind,
    LineDecoder,
    PulseClassifier,
    PulseKind,
    byte_to_bits,
)


def _feed_runs(runs: Sequence[Tuple[int, int]], long_ticks: int = 4) -> Tuple[LineDecoder, List[DecodedEvent]]:
    classifier = PulseClassifier(long_ticks=long_ticks)
    decoder = LineDecoder()
    events: List[DecodedEvent] = []
    for tick, (level, length) in enumerate(runs):
        event = decoder.feed(classifier.observe_run(level, length, tick))
        if event is not None:
            events.append(event)
    return decoder, events


def test_pulse_classification_cutoff():
    classifier = PulseClassifier(long_ticks=4, idle_ticks=16)
    assert classifier.observe_run(1, 3).kind is PulseKind.SHORT
    assert classifier.observe_run(1, 4).kind is PulseKind.LONG
    assert classifier.observe_run(0, 15).kind is PulseKind.LONG
    assert classifier.observe_run(0, 16).kind is PulseKind.IDLE


def test_first_observation_only_initialises():
    classifier = PulseClassifier(long_ticks=4)
    assert classifier.observe(1, 0) is None
    assert classifier.observe(1, 1) is None
    assert classifier.observe(1, 2) is None
    pulse = classifier.observe(0, 3)
    assert pulse is not None
    assert (pulse.level, pulse.length, pulse.kind) == (1, 3, PulseKind.SHORT)
    assert classifier.run_length == 1


def test_mixed_pulse_sequence_bits():
    decoder, events = _feed_runs([(0, 4), (1, 2), (0, 2), (1, 4)])
    assert events == []
    assert decoder.bits == [0, 1, 1]
    assert decoder.pending is None


def test_low_then_high_pair_is_zero():
    decoder, _ = _feed_runs([(0, 2), (1, 2)])
    assert decoder.bits == [0]


def test_same_level_short_pulses_replace_pending():
    decoder = LineDecoder()
    classifier = PulseClassifier(long_ticks=4)
    decoder.feed(classifier.observe_run(1, 2))
    decoder.feed(classifier.observe_run(1, 3))
    assert decoder.bits == []
    assert decoder.pending == 1


def test_long_pulse_discards_pending():
    decoder, _ = _feed_runs([(1, 2), (0, 5)])
    assert decoder.bits == [0]
    assert decoder.pending is None


def test_sync_sequence_emits_lock_and_clears_accumulator():
    runs = [(1, 2), (0, 2)] * 4 + [(1, 2), (0, 4)] * 4
    decoder, events = _feed_runs(runs)
    assert [event.kind for event in events] == [EventKind.LOCK]
    assert events[0].tick == len(runs) - 1
    assert decoder.bits == []
    stats = decoder.stats()
    assert stats["bits"] == 8
    assert stats["locks"] == 1
    assert stats["characters"] == 0


def _push_word(decoder: LineDecoder, bits: Sequence[int]) -> DecodedEvent | None:
    event = None
    for bit in bits:
        event = decoder.push_bit(bit)
    return event


@pytest.mark.parametrize("value, expected", [(32, " "), (65, "A"), (126, "~")])
def test_printable_bytes_become_characters(value, expected):
    decoder = LineDecoder()
    event = _push_word(decoder, byte_to_bits(value))
    assert event == DecodedEvent(EventKind.CHARACTER, -1, expected)


@pytest.mark.parametrize("value", [0, 31, 127, 0xF1, 0xFF])
def test_non_printable_bytes_are_dropped(value):
    decoder = LineDecoder()
    assert _push_word(decoder, byte_to_bits(value)) is None
    assert decoder.stats()["dropped"] == 1
    assert decoder.bits == []


def test_markers_are_distinct_from_data():
    decoder = LineDecoder()
    lock = _push_word(decoder, LOCK_WORD)
    end = _push_word(decoder, END_WORD)
    assert lock is not None and lock.kind is EventKind.LOCK and lock.text == "[LOCK]"
    assert end is not None and end.kind is EventKind.END and end.text == "[END]"
    assert decoder.stats()["characters"] == 0


def test_idle_run_clears_partial_word():
    classifier = PulseClassifier(long_ticks=4, idle_ticks=16)
    decoder = LineDecoder()
    for bit in (1, 0, 1):
        decoder.push_bit(bit)
    decoder.feed(classifier.observe_run(1, 2))
    assert decoder.feed(classifier.observe_run(0, 30)) is None
    assert decoder.bits == []
    assert decoder.pending is None
    assert decoder.stats()["breaks"] == 1



def test_default_config_keeps_long_runs_as_bits():
    linecode = load_config(None).linecode
    classifier = PulseClassifier(long_ticks=linecode.long_ticks, idle_ticks=linecode.idle_ticks)
    decoder = LineDecoder()
    for bit in (1, 0, 1):
        decoder.push_bit(bit)
    pulse = classifier.observe_run(0, 16)
    assert pulse.kind is PulseKind.LONG
    decoder.feed(pulse)
    assert decoder.bits == [1, 0, 1, 0]
    assert decoder.stats()["breaks"] == 0


@pytest.mark.parametrize("idle_level", [0, 1])
def test_encoded_runs_decode_to_framed_message(idle_level):
    runs = runs_to_ticks(bits_to_runs(frame_message("Hi!"), idle_level=idle_level), 2)
    _, events = _feed_runs(runs)
    assert [event.text for event in events] == ["[LOCK]", "H", "i", "!", "[END]"]


def test_tick_level_states_decode_with_idle_breaks():
    levels = runs_to_levels(bits_to_runs(frame_message("OK")), 2, lead_ticks=20, tail_ticks=20)
    classifier = PulseClassifier(long_ticks=4, idle_ticks=16)
    decoder = LineDecoder()
    texts = []
    for tick, state in enumerate(levels):
        pulse = classifier.observe(int(state), tick)
        if pulse is None:
            continue
        event = decoder.feed(pulse)
        if event is not None:
            texts.append(event.text)
    assert texts == ["[LOCK]", "O", "K", "[END]"]
    assert decoder.stats()["breaks"] == 1


def test_frame_message_rejects_non_printable():
    with pytest.raises(ValueError):
        frame_message("tab\there")


def test_classifier_rejects_inconsistent_cutoffs():
    with pytest.raises(ValueError):
        PulseClassifier(long_ticks=1)
    with pytest.raises(ValueError):
        PulseClassifier(long_ticks=4, idle_ticks=4)
