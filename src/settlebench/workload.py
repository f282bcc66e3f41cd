# Copyright (c) Syntropy Systems
"""Seeded workload generation.

Datasets are produced from a mulberry32 stream so that the same seed
yields the same regions, prices and quantities in every process.
Only ``updated_at`` depends on the wall clock.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Literal, Union

from typing_extensions import TypeAlias

Seed: TypeAlias = Union[str, int]
Region = Literal["US", "EU", "APAC"]

REGIONS: tuple[Region, ...] = ("US", "EU", "APAC")
SORTABLE_COLUMNS = ("id", "product", "region", "price", "qty", "updated_at")

_MASK32 = 0xFFFFFFFF
_GOLDEN_GAMMA = 0x6D2B79F5
_TWO_32 = 4294967296


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def seed_state(seed: Seed) -> int:
    """Derive the initial 32-bit stream state from a seed.

    Numeric seeds are used directly; string seeds use the sum of their
    character codes, so ``"42"`` and ``102`` are the same stream.
    """
    if isinstance(seed, str):
        return sum(ord(ch) for ch in seed) & _MASK32
    return int(seed) & _MASK32


class Stream:
    """Deterministic mulberry32 stream of floats in [0, 1)."""

    _state: int

    def __init__(self, state: int) -> None:
        self._state = state & _MASK32

    @property
    def state(self) -> int:
        """Return the current internal state."""
        return self._state

    def next(self) -> float:
        """Return the next float in [0, 1)."""
        self._state = (self._state + _GOLDEN_GAMMA) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_32


def create_stream(seed: Seed) -> Stream:
    """Create a stream for a seed."""
    return Stream(seed_state(seed))


@dataclass
class Row:
    """A single grid row."""

    id: int
    product: str
    region: Region
    price: float
    qty: int
    updated_at: int

    def values(self) -> tuple[Region, float, int]:
        """Return the seed-derived fields (everything but ids and time)."""
        return (self.region, self.price, self.qty)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _draw_price(stream: Stream) -> float:
    return math.floor(stream.next() * 1000) / 10


def _draw_qty(stream: Stream) -> int:
    return int(stream.next() * 1000)


def generate_rows(count: int, stream: Stream) -> list[Row]:
    """Generate ``count`` rows from a stream."""
    rows: list[Row] = []
    for i in range(count):
        region = REGIONS[int(stream.next() * len(REGIONS))]
        price = _draw_price(stream)
        qty = _draw_qty(stream)
        rows.append(
            Row(
                id=i,
                product=f"Product {i}",
                region=region,
                price=price,
                qty=qty,
                updated_at=_now_ms(),
            )
        )
    return rows


def mutate_rows_fraction(rows: list[Row], fraction: float, stream: Stream) -> list[int]:
    """Overwrite price/qty/updated_at for ``floor(len(rows) * fraction)`` draws.

    Indices are drawn with replacement, so fewer distinct rows than draws
    may change. Returns the drawn indices in draw order.
    """
    if not rows:
        return []

    count = int(len(rows) * fraction)
    drawn: list[int] = []
    for _ in range(count):
        idx = int(stream.next() * len(rows))
        row = rows[idx]
        row.price = _draw_price(stream)
        row.qty = _draw_qty(stream)
        row.updated_at = _now_ms()
        drawn.append(idx)
    return drawn


def insert_rows(rows: list[Row], count: int) -> list[Row]:
    """Append ``count`` zeroed US rows with ids continuing from the end."""
    start = len(rows)
    now = _now_ms()
    inserted = [
        Row(
            id=start + i,
            product=f"Product {start + i}",
            region="US",
            price=0.0,
            qty=0,
            updated_at=now,
        )
        for i in range(count)
    ]
    rows.extend(inserted)
    return inserted


def remove_rows(rows: list[Row], count: int) -> list[Row]:
    """Drop up to ``count`` rows from the end."""
    keep = max(0, len(rows) - count)
    removed = rows[keep:]
    del rows[keep:]
    return removed


def sort_rows(rows: list[Row], column: str) -> None:
    """Sort rows in place by a column."""
    if column not in SORTABLE_COLUMNS:
        msg = f"Unknown column: {column}"
        raise ValueError(msg)
    rows.sort(key=lambda row: getattr(row, column))
