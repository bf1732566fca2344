#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Test Pattern
Random filler data shared by all blocks of a run
"""

import time
import random
from typing import Optional

from .layout import BlockSpec

# Pattern bytes are drawn from 1..254, 0 and 0xFF are never produced
PATTERN_MIN = 1
PATTERN_MAX = 254
_EXCLUDED = bytes(b for b in range(256) if not PATTERN_MIN <= b <= PATTERN_MAX)


def generate_pattern(size: int, seed: Optional[int] = None) -> bytes:
    """
    Generate size random bytes, each uniformly drawn from 1..254.

    The generator is seeded from the clock unless a seed is given. Runs are not
    meant to be reproducible, the pattern only has to be unlikely to show up by accident.

    Args:
        size: Pattern length, the maximum block size of the run.
        seed: Optional fixed seed.

    Returns:
        The pattern bytes.
    """
    if size <= 0:
        raise ValueError(f"Invalid pattern size: {size}")
    if seed is None:
        seed = time.time_ns()
    rng = random.Random(seed)

    # Rejection sampling keeps the remaining values uniform
    pattern = bytearray()
    while len(pattern) < size:
        chunk = rng.randbytes(size - len(pattern) + 64)
        pattern += chunk.translate(None, _EXCLUDED)
    del pattern[size:]
    return bytes(pattern)


def block_data(pattern: bytes, block: BlockSpec) -> bytes:
    """
    Expected content of a block: the pattern cut to the block size with the block's id tag at the start.

    Blocks smaller than their tag carry no tag. The shared pattern is never modified.
    """
    if len(pattern) < block.size:
        raise ValueError(f"Pattern ({len(pattern)} bytes) shorter than block ({block.size} bytes)")
    tag = block.tag
    if block.size < len(tag):
        return pattern[:block.size]
    return tag + pattern[len(tag):block.size]
