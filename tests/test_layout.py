#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

import os
import pytest

from capacity_backend.layout import (
    MB, TAG_TERMINATOR, plan_layout, file_tag, block_tag, Layout
)
from capacity_backend.errors import LayoutError


class TestScenarios:
    def test_ten_mib_in_four_mib_files(self):
        layout = plan_layout(10 * MB, 4 * MB, 1 * MB)

        assert [f.size for f in layout] == [4 * MB, 4 * MB, 2 * MB]
        assert [f.offset for f in layout] == [0, 4 * MB, 8 * MB]
        assert [f.end for f in layout] == [4 * MB, 8 * MB, 10 * MB]

        last = layout[2]
        assert [b.size for b in last.blocks] == [MB, MB]
        assert [b.abs_offset for b in last.blocks] == [8 * MB, 9 * MB]
        assert [b.rel_offset for b in last.blocks] == [0, MB]

    def test_exact_multiple_has_no_short_unit(self):
        layout = plan_layout(8 * MB, 4 * MB, 2 * MB)
        assert [f.size for f in layout] == [4 * MB, 4 * MB]
        for f in layout:
            assert [b.size for b in f.blocks] == [2 * MB, 2 * MB]

    def test_remainder_file_and_block(self):
        total = 9 * MB + 12345
        layout = plan_layout(total, 4 * MB, 3 * MB)

        assert [f.size for f in layout] == [4 * MB, 4 * MB, MB + 12345]
        assert [b.size for b in layout[0].blocks] == [3 * MB, MB]
        assert [b.size for b in layout[2].blocks] == [MB + 12345]

    def test_smaller_than_one_block(self):
        layout = plan_layout(100, 4 * MB, MB)
        assert len(layout) == 1
        assert layout[0].size == 100
        assert [b.size for b in layout[0].blocks] == [100]

    def test_paths_use_prefix_and_index(self, tmp_path):
        layout = plan_layout(10 * MB, 4 * MB, MB, directory=str(tmp_path), prefix="TESTFILE")
        assert layout.paths == [os.path.join(str(tmp_path), f"TESTFILE{i}") for i in range(3)]


class TestInvariants:
    @pytest.mark.parametrize("total, file_max, block_max", [
        (1, 2 * MB, MB),
        (MB, 2 * MB, MB),
        (10 * MB, 4 * MB, MB),
        (37 * MB + 1, 8 * MB, 3 * MB),
        (64 * MB - 1, 16 * MB, 16 * MB - MB),
        (100 * MB + 777, 512 * MB, 16 * MB),
    ])
    def test_sizes_sum_and_ranges_cover(self, total, file_max, block_max):
        layout = plan_layout(total, file_max, block_max)

        assert layout.total_bytes == total
        assert sum(f.size for f in layout) == total

        position = 0
        for i, f in enumerate(layout):
            assert f.index == i
            assert f.offset == position
            assert f.end == f.offset + f.size
            assert f.size > 0
            if i < len(layout) - 1:
                assert f.size == file_max
            else:
                assert f.size <= file_max

            assert sum(b.size for b in f.blocks) == f.size
            for j, b in enumerate(f.blocks):
                # Contiguous in absolute offset space, no gaps or overlaps
                assert b.abs_offset == position
                assert b.abs_offset == f.offset + b.rel_offset
                assert b.abs_end == b.abs_offset + b.size
                assert b.size > 0
                if j < len(f.blocks) - 1:
                    assert b.size == block_max
                else:
                    assert b.size <= block_max
                position = b.abs_end
        assert position == total

    def test_large_volume_offsets(self):
        # Past 32 bits, no wraparound
        total = 3 * 1024 * 1024 * MB + MB
        layout = plan_layout(total, 512 * MB, 256 * MB)

        assert len(layout) == 3 * 2048 + 1
        last = layout[len(layout) - 1]
        assert last.offset == 3 * 1024 * 1024 * MB
        assert last.size == MB
        assert last.end == total
        assert layout[4096].blocks[1].abs_offset == 4096 * 512 * MB + 256 * MB

    def test_tags_are_unique(self):
        layout = plan_layout(37 * MB, 4 * MB, MB)
        file_tags = [f.tag for f in layout]
        block_tags = [b.tag for f in layout for b in f.blocks]
        assert len(set(file_tags)) == len(file_tags)
        assert len(set(block_tags)) == len(block_tags)

    def test_block_lookup(self):
        layout = plan_layout(10 * MB, 4 * MB, MB)
        assert layout.block(1, 3).abs_offset == 7 * MB
        assert layout.block_count == 10

    def test_empty_layout(self):
        layout = Layout()
        assert len(layout) == 0
        assert layout.paths == []


class TestTags:
    def test_file_tag(self):
        assert file_tag(0) == b"0\xff"
        assert file_tag(42) == b"42" + bytes([TAG_TERMINATOR])

    def test_block_tag(self):
        assert block_tag(3, 17) == b"3:17\xff"

    def test_tags_do_not_collide(self):
        # "1:11" vs "11:1" style ambiguities
        assert block_tag(1, 11) != block_tag(11, 1)
        assert file_tag(1) != block_tag(1, 0)


class TestPreconditions:
    def test_zero_total(self):
        with pytest.raises(LayoutError):
            plan_layout(0, 4 * MB, MB)

    def test_unaligned_block(self):
        with pytest.raises(LayoutError):
            plan_layout(10 * MB, 4 * MB, MB + 1)

    def test_unaligned_file(self):
        with pytest.raises(LayoutError):
            plan_layout(10 * MB, 4 * MB + 512, MB)

    def test_file_not_larger_than_block(self):
        with pytest.raises(LayoutError):
            plan_layout(10 * MB, MB, MB)

    def test_empty_prefix(self):
        with pytest.raises(LayoutError):
            plan_layout(10 * MB, 4 * MB, MB, prefix="")

    def test_custom_alignment(self):
        layout = plan_layout(10 * 4096, 4 * 4096, 4096, alignment=4096)
        assert [f.size for f in layout] == [4 * 4096, 4 * 4096, 2 * 4096]
