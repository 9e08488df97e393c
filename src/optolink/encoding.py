"""
Transmit-side line encoder producing the pulse sequence the receiver decodes.

Every bit starts with a half-bit pulse away from the idle level. When that
half-bit already has the polarity of the bit's pair (high for 1, low for 0) the
bit closes with the opposite half-bit; otherwise the bit's own level is held for
a full bit. Either way the line is back at the idle level between bits.
"""
from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .rx.linecode import END_WORD, LOCK_WORD, PRINTABLE_MAX, PRINTABLE_MIN, byte_to_bits

Run = Tuple[int, int]  # (level, length in half-bits)


def frame_message(text: str, *, lock: bool = True, end: bool = True) -> List[int]:
    """Frame *text* as LOCK word, one byte per character (MSB first), END word."""
    bits: List[int] = list(LOCK_WORD) if lock else []
    for char in text:
        value = ord(char)
        if not PRINTABLE_MIN <= value <= PRINTABLE_MAX:
            raise ValueError(f"Character {char!r} is not printable ASCII")
        bits.extend(byte_to_bits(value))
    if end:
        bits.extend(END_WORD)
    return bits


def bits_to_runs(bits: Iterable[int], *, idle_level: int = 0) -> List[Run]:
    """
    Encode *bits* as alternating-level runs measured in half-bits.

    The sequence ends with a single half-bit pulse away from the idle level so
    the final data run is terminated by an edge.
    """
    idle = 1 if idle_level else 0
    away = 1 - idle
    runs: List[Run] = []
    for bit in bits:
        runs.append((away, 1))
        if bit == away:
            runs.append((idle, 1))
        else:
            runs.append((idle, 2))
    if runs:
        runs.append((away, 1))
    return runs


def carrier_runs(half_bits: int, *, idle_level: int = 0) -> List[Run]:
    """Alternating half-bit pulses used to let the receiver baseline settle."""
    idle = 1 if idle_level else 0
    runs: List[Run] = []
    for _ in range(half_bits // 2):
        runs.append((1 - idle, 1))
        runs.append((idle, 1))
    return runs


def runs_to_ticks(runs: Sequence[Run], half_bit_ticks: int) -> List[Run]:
    return [(level, length * half_bit_ticks) for level, length in runs]


def runs_to_levels(
    runs: Sequence[Run],
    half_bit_ticks: int,
    *,
    idle_level: int = 0,
    lead_ticks: int = 0,
    tail_ticks: int = 0,
) -> np.ndarray:
    if half_bit_ticks < 1:
        raise ValueError("half_bit_ticks must be >= 1")
    idle = 1 if idle_level else 0
    levels = np.array([level for level, _ in runs], dtype=np.uint8)
    lengths = np.array([length * half_bit_ticks for _, length in runs], dtype=int)
    body = np.repeat(levels, lengths) if runs else np.empty(0, dtype=np.uint8)
    lead = np.full(lead_ticks, idle, dtype=np.uint8)
    tail = np.full(tail_ticks, idle, dtype=np.uint8)
    return np.concatenate([lead, body, tail])


def transmission_levels(
    text: str,
    *,
    half_bit_ticks: int = 2,
    gap_ticks: int = 20,
    repeats: int = 1,
    carrier_half_bits: int = 32,
    idle_level: int = 0,
) -> np.ndarray:
    """
    Per-tick light levels for a complete transmission: idle lead-in, settling
    carrier, then *repeats* copies of the framed message separated by idle gaps.
    """
    if repeats < 1:
        raise ValueError("repeats must be >= 1")
    message = bits_to_runs(frame_message(text), idle_level=idle_level)
    parts = [
        runs_to_levels(
            carrier_runs(carrier_half_bits, idle_level=idle_level),
            half_bit_ticks,
            idle_level=idle_level,
            lead_ticks=gap_ticks,
            tail_ticks=gap_ticks,
        )
    ]
    for _ in range(repeats):
        parts.append(
            runs_to_levels(message, half_bit_ticks, idle_level=idle_level, tail_ticks=gap_ticks)
        )
    return np.concatenate(parts)
