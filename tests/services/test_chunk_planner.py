"""Tests for multipart chunk planning."""

import pytest

from objgw.common.config import MIB
from objgw.services.chunk_planner import (
    DEFAULT_PART_SIZE_BYTES,
    ChunkPlan,
    PlannedPart,
    plan_chunks,
)


class TestPlanChunks:
    def test_exact_multiple_yields_full_parts(self):
        plan = plan_chunks(10 * MIB, 5 * MIB)

        assert plan.part_numbers == [1, 2]
        assert [p.size for p in plan] == [5 * MIB, 5 * MIB]

    def test_remainder_goes_to_last_part(self):
        plan = plan_chunks(12 * MIB + 3, 5 * MIB)

        assert plan.part_numbers == [1, 2, 3]
        assert [p.size for p in plan] == [5 * MIB, 5 * MIB, 2 * MIB + 3]

    def test_payload_smaller_than_part_is_single_part(self):
        plan = plan_chunks(5 * MIB - 1, 5 * MIB)

        assert len(plan) == 1
        assert plan.parts[0] == PlannedPart(part_number=1, start=0, end=5 * MIB - 1)

    def test_one_byte_payload(self):
        plan = plan_chunks(1)

        assert plan.part_size == DEFAULT_PART_SIZE_BYTES
        assert [(p.start, p.end) for p in plan] == [(0, 1)]

    def test_zero_length_payload_has_no_parts(self):
        plan = plan_chunks(0, 5 * MIB)

        assert len(plan) == 0
        assert not plan
        assert plan.part_numbers == []

    def test_parts_are_contiguous_and_cover_payload(self):
        length = 23 * MIB + 17
        plan = plan_chunks(length, 5 * MIB)

        assert plan.parts[0].start == 0
        for previous, current in zip(plan.parts, plan.parts[1:]):
            assert previous.end == current.start
            assert current.part_number == previous.part_number + 1
        assert plan.parts[-1].end == length
        assert sum(p.size for p in plan) == length

    @pytest.mark.parametrize("part_size", [0, -1])
    def test_rejects_non_positive_part_size(self, part_size):
        with pytest.raises(ValueError, match="part_size must be positive"):
            plan_chunks(10, part_size)

    def test_rejects_negative_length(self):
        with pytest.raises(ValueError, match="payload_length must not be negative"):
            plan_chunks(-1, 5 * MIB)


def test_slice_returns_part_bytes():
    payload = bytes(range(10))
    plan = plan_chunks(len(payload), 4)

    chunks = [ChunkPlan.slice(payload, part).tobytes() for part in plan]

    assert chunks == [bytes([0, 1, 2, 3]), bytes([4, 5, 6, 7]), bytes([8, 9])]
    assert b"".join(chunks) == payload
