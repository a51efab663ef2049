"""Split a payload into the ordered parts of a multipart upload."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from objgw.common.config import MIN_PART_SIZE_BYTES

DEFAULT_PART_SIZE_BYTES = MIN_PART_SIZE_BYTES
# S3 refuses part numbers above this.
MAX_PART_COUNT = 10000


@dataclass(frozen=True, slots=True)
class PlannedPart:
    """Half-open byte range ``[start, end)`` uploaded as one part."""

    part_number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class ChunkPlan:
    payload_length: int
    part_size: int
    parts: tuple[PlannedPart, ...]

    def __iter__(self) -> Iterator[PlannedPart]:
        return iter(self.parts)

    def __len__(self) -> int:
        return len(self.parts)

    @property
    def part_numbers(self) -> list[int]:
        return [part.part_number for part in self.parts]

    @staticmethod
    def slice(payload: bytes | memoryview, part: PlannedPart) -> memoryview:
        """Return the part's bytes without copying the payload."""
        return memoryview(payload)[part.start : part.end]


def plan_chunks(
    payload_length: int, part_size: int = DEFAULT_PART_SIZE_BYTES
) -> ChunkPlan:
    """Plan contiguous parts numbered from 1.

    Every part except the last is exactly ``part_size`` bytes. A zero-length
    payload yields an empty plan.

    Raises:
        ValueError: If ``part_size`` is not positive or ``payload_length``
            is negative.
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    if payload_length < 0:
        raise ValueError("payload_length must not be negative")

    parts = tuple(
        PlannedPart(
            part_number=index + 1,
            start=start,
            end=min(start + part_size, payload_length),
        )
        for index, start in enumerate(range(0, payload_length, part_size))
    )
    return ChunkPlan(payload_length=payload_length, part_size=part_size, parts=parts)
