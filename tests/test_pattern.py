import pytest

from capacity_backend.layout import MB, plan_layout, BlockSpec, block_tag
from capacity_backend.pattern import generate_pattern, block_data


@pytest.fixture(scope="module")
def pattern():
    return generate_pattern(MB, seed=1234)


class TestGeneratePattern:
    def test_length(self, pattern):
        assert len(pattern) == MB

    def test_no_zero_or_ff(self, pattern):
        assert 0 not in pattern
        assert 0xFF not in pattern

    def test_values_spread(self, pattern):
        # All 254 allowed values show up in a megabyte of random data
        assert set(pattern) == set(range(1, 255))

    def test_same_seed_same_pattern(self, pattern):
        assert generate_pattern(MB, seed=1234) == pattern

    def test_different_seed(self, pattern):
        assert generate_pattern(MB, seed=4321) != pattern

    def test_clock_seeded(self):
        a = generate_pattern(4096)
        assert len(a) == 4096
        assert 0 not in a

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            generate_pattern(0)


class TestBlockData:
    def test_full_block(self, pattern):
        layout = plan_layout(4 * MB, 2 * MB, MB)
        block = layout.block(1, 1)
        data = block_data(pattern, block)

        assert len(data) == MB
        assert data.startswith(b"1:1\xff")
        assert data[len(block.tag):] == pattern[len(block.tag):]

    def test_short_block_is_truncated(self, pattern):
        layout = plan_layout(MB + 1000, 2 * MB, MB)
        block = layout.block(0, 1)
        data = block_data(pattern, block)

        assert block.size == 1000
        assert len(data) == 1000
        assert data[:len(block.tag)] == block.tag
        assert data[len(block.tag):] == pattern[len(block.tag):1000]

    def test_block_smaller_than_tag(self, pattern):
        block = BlockSpec(file_index=12, index=345, rel_offset=0, abs_offset=0,
                          size=3, abs_end=3, tag=block_tag(12, 345))
        assert block_data(pattern, block) == pattern[:3]

    def test_deterministic(self, pattern):
        layout = plan_layout(4 * MB, 2 * MB, MB)
        block = layout.block(0, 1)
        assert block_data(pattern, block) == block_data(pattern, block)

    def test_blocks_differ_by_tag_only(self, pattern):
        layout = plan_layout(4 * MB, 2 * MB, MB)
        a = block_data(pattern, layout.block(0, 0))
        b = block_data(pattern, layout.block(1, 0))
        assert a != b
        assert a[4:] == b[4:]

    def test_pattern_too_short(self):
        layout = plan_layout(4 * MB, 2 * MB, MB)
        with pytest.raises(ValueError):
            block_data(b"\x01" * 100, layout.block(0, 0))
