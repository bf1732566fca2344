#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Mounted Volume
Queries about the filesystem under test: mountpoints, sizes and root directory entries.
"""

import os
import logging
from typing import List

from PySide6.QtCore import QStorageInfo

logger = logging.getLogger(__name__)


def _same_path(a: str, b: str) -> bool:
    return os.path.normcase(os.path.normpath(a)) == os.path.normcase(os.path.normpath(b))


class Volume:
    """A mounted filesystem, identified by its mountpoint"""

    def __init__(self, mountpoint: str):
        # Only keep the mountpoint if it is one, never default to cwd
        self._mountpoint = mountpoint if Volume.is_valid_mountpoint(mountpoint) else ""
        if mountpoint and not self._mountpoint:
            logger.warning(f"Not a valid mountpoint: {mountpoint}")

    @staticmethod
    def is_valid_mountpoint(mountpoint: str) -> bool:
        """Check that mountpoint is the root of a mounted, ready filesystem"""
        if not mountpoint:
            return False
        storage = QStorageInfo(mountpoint)
        if not storage.isValid() or not _same_path(storage.rootPath(), mountpoint):
            # Could be a plain directory on some other filesystem
            return False
        return storage.isReady()

    @staticmethod
    def available_mountpoints() -> List[str]:
        """Root paths of all mounted volumes"""
        return [s.rootPath() for s in QStorageInfo.mountedVolumes() if s.isValid()]

    @property
    def mountpoint(self) -> str:
        return self._mountpoint

    def is_valid(self) -> bool:
        """Check if the mountpoint is (still) valid"""
        return Volume.is_valid_mountpoint(self._mountpoint)

    def _storage(self):
        storage = QStorageInfo(self._mountpoint)
        if self._mountpoint and storage.isValid() and storage.isReady():
            return storage
        return None

    def bytes_total(self) -> int:
        storage = self._storage()
        return storage.bytesTotal() if storage else 0

    def bytes_used(self) -> int:
        storage = self._storage()
        return storage.bytesTotal() - storage.bytesFree() if storage else 0

    def bytes_available(self) -> int:
        """Space available to this process, the amount a test will cover"""
        storage = self._storage()
        return storage.bytesAvailable() if storage else 0

    def name(self) -> str:
        storage = self._storage()
        return storage.name() if storage else ""

    def label(self) -> str:
        """Mountpoint with the filesystem name, e.g. '/media/usb: STICK'"""
        if not self.is_valid():
            return ""
        name = self.name()
        return f"{self._mountpoint}: {name}" if name else self._mountpoint

    def entry_names(self) -> List[str]:
        """
        Names of all entries in the filesystem root (not recursive).

        Hidden and system entries are included. Directories carry a trailing '/'
        and are listed first, then everything sorted case-insensitively.
        """
        if not self.is_valid():
            return []
        try:
            with os.scandir(self._mountpoint) as it:
                entries = [(e.is_dir(follow_symlinks=False), e.name) for e in it]
        except OSError as e:
            logger.warning(f"Cannot list {self._mountpoint}: {e}")
            return []

        entries.sort(key=lambda x: (not x[0], x[1].lower()))
        return [name + "/" if is_dir else name for is_dir, name in entries]

    def conflict_files(self, prefix: str) -> List[str]:
        """
        Root entries that look like test files.

        A test cannot start while these exist. They are usually left over from
        a run that crashed before it could clean up.
        """
        if not prefix:
            raise ValueError("File prefix must not be empty")
        return [name for name in self.entry_names() if name.startswith(prefix)]
