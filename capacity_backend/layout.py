#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Test Layout Planner
Splits the available space of a volume into test files and each file into blocks.

Every file and block gets an id tag derived from its position. The tag is written
at the start of the unit so that a device which silently wraps addresses (writes to
offset N end up at N modulo the real capacity) is caught when the tag is read back.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Tuple

from .errors import LayoutError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# File and block limits must be multiples of this
ALIGNMENT = MB

# Terminates every id tag, never produced by the pattern generator
TAG_TERMINATOR = 0xFF


def file_tag(file_index: int) -> bytes:
    """Id tag of a test file, e.g. b'3\\xff'"""
    return str(file_index).encode('ascii') + bytes([TAG_TERMINATOR])


def block_tag(file_index: int, block_index: int) -> bytes:
    """Id tag of a block within a test file, e.g. b'3:17\\xff'"""
    return f"{file_index}:{block_index}".encode('ascii') + bytes([TAG_TERMINATOR])


@dataclass(frozen=True)
class BlockSpec:
    """One write/verify unit within a test file"""
    file_index: int
    index: int
    rel_offset: int
    abs_offset: int
    size: int
    abs_end: int
    tag: bytes


@dataclass(frozen=True)
class FileSpec:
    """One test file on the volume"""
    index: int
    path: str
    offset: int
    size: int
    end: int
    tag: bytes
    blocks: Tuple[BlockSpec, ...]


@dataclass(frozen=True)
class Layout:
    """Ordered test files covering [0, total_bytes) exactly once"""
    total_bytes: int = 0
    files: Tuple[FileSpec, ...] = ()

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self):
        return iter(self.files)

    def __getitem__(self, index: int) -> FileSpec:
        return self.files[index]

    @property
    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    @property
    def block_count(self) -> int:
        return sum(len(f.blocks) for f in self.files)

    def block(self, file_index: int, block_index: int) -> BlockSpec:
        return self.files[file_index].blocks[block_index]


def _split(total: int, unit: int) -> List[Tuple[int, int]]:
    """
    Split total bytes into (offset, size) pieces of at most unit bytes.

    Only the last piece may be smaller, and only if total is not a multiple of unit.
    """
    count, remainder = divmod(total, unit)
    if remainder:
        count += 1

    pieces = []
    for i in range(count):
        size = unit
        if i == count - 1 and remainder:
            size = remainder
        # Offset is index times the limit, never times the current size
        pieces.append((i * unit, size))
    return pieces


def plan_layout(total_bytes: int, max_file_size: int, max_block_size: int,
                directory: str = "", prefix: str = "CAPACITYTESTER",
                alignment: int = ALIGNMENT) -> Layout:
    """
    Calculate test files and blocks for the given amount of space.

    Args:
        total_bytes: Bytes to cover, usually the available space of the volume.
        max_file_size: Size of every file except possibly the last one.
        max_block_size: Size of every block except possibly the last one in a file.
        directory: Directory the test files are placed in (mount root).
        prefix: File name prefix, the file index is appended.
        alignment: Unit both limits must be a multiple of.

    Returns:
        The Layout, files ordered by ascending absolute offset.

    Raises:
        LayoutError: If the sizing violates the preconditions.
    """
    if total_bytes <= 0:
        raise LayoutError(f"Nothing to test: {total_bytes} bytes")
    if max_block_size <= 0 or max_block_size % alignment:
        raise LayoutError(f"Block size {max_block_size} is not a positive multiple of {alignment}")
    if max_file_size <= 0 or max_file_size % alignment:
        raise LayoutError(f"File size {max_file_size} is not a positive multiple of {alignment}")
    if max_file_size <= max_block_size:
        raise LayoutError(f"File size {max_file_size} must be larger than block size {max_block_size}")
    if not prefix:
        raise LayoutError("File prefix must not be empty")

    files = []
    for i, (file_offset, file_size) in enumerate(_split(total_bytes, max_file_size)):
        blocks = []
        for j, (rel_offset, block_size) in enumerate(_split(file_size, max_block_size)):
            blocks.append(BlockSpec(
                file_index=i,
                index=j,
                rel_offset=rel_offset,
                abs_offset=file_offset + rel_offset,
                size=block_size,
                abs_end=file_offset + rel_offset + block_size,
                tag=block_tag(i, j),
            ))

        files.append(FileSpec(
            index=i,
            path=os.path.join(directory, f"{prefix}{i}"),
            offset=file_offset,
            size=file_size,
            end=file_offset + file_size,
            tag=file_tag(i),
            blocks=tuple(blocks),
        ))

    layout = Layout(total_bytes=total_bytes, files=tuple(files))
    logger.debug(f"Planned {len(layout)} files, {layout.block_count} blocks for {total_bytes} bytes")
    return layout
