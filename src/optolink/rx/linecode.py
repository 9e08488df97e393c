"""
Run-length pulse classification and self-clocking bit recovery.

A logical 1 arrives as a short high half-bit followed by a short low half-bit,
a logical 0 as the reverse pair. A long pulse carries the bit of its own level
directly. Bits are framed MSB first into 8-bit units; two reserved units mark
lock and end of message.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

FRAME_BITS = 8
LOCK_WORD = (1, 1, 1, 1, 0, 0, 0, 0)
END_WORD = (0, 0, 0, 0, 1, 1, 1, 1)
PRINTABLE_MIN = 32
PRINTABLE_MAX = 126


class PulseKind(str, enum.Enum):
    SHORT = "short"
    LONG = "long"
    IDLE = "idle"


class EventKind(str, enum.Enum):
    CHARACTER = "character"
    LOCK = "lock"
    END = "end"


@dataclass(frozen=True)
class Pulse:
    level: int
    length: int
    kind: PulseKind
    tick: int = -1


@dataclass(frozen=True)
class DecodedEvent:
    kind: EventKind
    tick: int
    char: Optional[str] = None

    @property
    def text(self) -> str:
        if self.kind is EventKind.CHARACTER:
            return self.char or ""
        return f"[{self.kind.value.upper()}]"


class PulseClassifier:
    """
    Tracks the run length of the digital state and classifies each completed run
    when the state flips. The cut-off between half-bit and full-bit runs is a
    fixed number of ticks; no clock is recovered from the observed runs.
    """

    def __init__(self, long_ticks: int = 4, idle_ticks: int | None = None):
        if long_ticks <= 1:
            raise ValueError("long_ticks must be > 1")
        if idle_ticks and idle_ticks <= long_ticks:
            raise ValueError("idle_ticks must exceed long_ticks")
        self.long_ticks = long_ticks
        self.idle_ticks = idle_ticks or None
        self.last_state: Optional[int] = None
        self.run_length = 0

    def observe(self, state: int, tick: int = -1) -> Optional[Pulse]:
        if self.last_state is None:
            self.last_state = state
            self.run_length = 1
            return None
        if state == self.last_state:
            self.run_length += 1
            return None
        pulse = self.observe_run(self.last_state, self.run_length, tick)
        self.last_state = state
        self.run_length = 1
        return pulse

    def observe_run(self, level: int, length: int, tick: int = -1) -> Pulse:
        if self.idle_ticks is not None and length >= self.idle_ticks:
            kind = PulseKind.IDLE
        elif length >= self.long_ticks:
            kind = PulseKind.LONG
        else:
            kind = PulseKind.SHORT
        return Pulse(level=level, length=length, kind=kind, tick=tick)

    def reset(self) -> None:
        self.last_state = None
        self.run_length = 0


class LineDecoder:
    """Pairs half-bit pulses into bits, frames bits into bytes and emits events."""

    def __init__(self) -> None:
        self.pending: Optional[int] = None
        self.bits: List[int] = []
        self._log = logging.getLogger(__name__)
        self._stats: Dict[str, int] = {
            "bits": 0,
            "bytes": 0,
            "characters": 0,
            "locks": 0,
            "ends": 0,
            "dropped": 0,
            "breaks": 0,
        }

    def feed(self, pulse: Pulse) -> Optional[DecodedEvent]:
        if pulse.kind is PulseKind.IDLE:
            self._stats["breaks"] += 1
            self.pending = None
            self.bits.clear()
            return None
        if pulse.kind is PulseKind.LONG:
            self.pending = None
            return self.push_bit(pulse.level, pulse.tick)
        if self.pending is not None and self.pending != pulse.level:
            bit = 1 if self.pending == 1 else 0
            self.pending = None
            return self.push_bit(bit, pulse.tick)
        self.pending = pulse.level
        return None

    def push_bit(self, bit: int, tick: int = -1) -> Optional[DecodedEvent]:
        self.bits.append(bit)
        self._stats["bits"] += 1
        if len(self.bits) < FRAME_BITS:
            return None
        word = tuple(self.bits)
        self.bits.clear()
        self._stats["bytes"] += 1
        if word == LOCK_WORD:
            self._stats["locks"] += 1
            return DecodedEvent(EventKind.LOCK, tick)
        if word == END_WORD:
            self._stats["ends"] += 1
            return DecodedEvent(EventKind.END, tick)
        value = bits_to_byte(word)
        if PRINTABLE_MIN <= value <= PRINTABLE_MAX:
            self._stats["characters"] += 1
            return DecodedEvent(EventKind.CHARACTER, tick, chr(value))
        self._stats["dropped"] += 1
        self._log.debug("Dropping non-printable byte 0x%02X at tick %d", value, tick)
        return None

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self.pending = None
        self.bits.clear()


def bits_to_byte(bits: tuple[int, ...] | List[int]) -> int:
    value = 0
    for bit in bits:
        value = (value << 1) | (bit & 1)
    return value


def byte_to_bits(value: int) -> List[int]:
    return [(value >> shift) & 1 for shift in range(FRAME_BITS - 1, -1, -1)]
