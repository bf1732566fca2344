#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Test File I/O
Thin wrapper around an unbuffered read-write file handle used by the volume tester.
Every failing call raises VolumeFileError so the tester can map it to a failure kind.
"""

import os
import logging
from typing import Optional

from .errors import VolumeFileError

logger = logging.getLogger(__name__)


class VolumeFile:
    """A test file on the volume under test"""

    def __init__(self, path: str):
        self.path = path
        self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self):
        """Create (or open) the file for reading and writing"""
        flags = os.O_RDWR | os.O_CREAT
        if hasattr(os, "O_BINARY"):
            flags |= os.O_BINARY
        try:
            fd = os.open(self.path, flags, 0o666)
        except OSError as e:
            raise VolumeFileError(f"Cannot create {self.path}: {e}", self.path, e) from e
        self._file = os.fdopen(fd, 'r+b', buffering=0)
        logger.debug(f"Opened {self.path}")

    def _handle(self):
        if self._file is None:
            raise VolumeFileError(f"{self.path} is not open", self.path)
        return self._file

    def write_at(self, offset: int, data: bytes) -> int:
        """
        Write data at offset.

        Returns:
            The number of bytes the device accepted, which may be short.
        """
        f = self._handle()
        try:
            f.seek(offset)
            written = f.write(data)
        except OSError as e:
            raise VolumeFileError(f"Write of {len(data)} bytes at {offset} failed: {e}", self.path, e) from e
        return written or 0

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to size bytes at offset, shorter only at end of file"""
        f = self._handle()
        try:
            f.seek(offset)
            data = f.read(size)
        except OSError as e:
            raise VolumeFileError(f"Read of {size} bytes at {offset} failed: {e}", self.path, e) from e
        return data or b""

    def resize(self, size: int):
        """Truncate or extend the file to size bytes"""
        f = self._handle()
        try:
            f.truncate(size)
        except OSError as e:
            raise VolumeFileError(f"Resize to {size} bytes failed: {e}", self.path, e) from e

    def sync(self) -> bool:
        """Ask the OS to flush this file to the device, best effort"""
        if self._file is None:
            return False
        try:
            os.fsync(self._file.fileno())
        except OSError as e:
            logger.debug(f"fsync failed for {self.path}: {e}")
            return False
        return True

    def close(self):
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError as e:
            logger.debug(f"Closing {self.path} failed: {e}")
        finally:
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @staticmethod
    def remove(path: str) -> Optional[bool]:
        """
        Remove a test file.

        Returns:
            True if removed, False if it did not exist.

        Raises:
            VolumeFileError: If the file exists but could not be removed.
        """
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise VolumeFileError(f"Cannot remove {path}: {e}", path, e) from e
        return True
