#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""Removal of the test files created by a run"""

import logging
from typing import Callable, List

from .errors import VolumeFileError
from .layout import Layout
from .volume_file import VolumeFile

logger = logging.getLogger(__name__)


def remove_test_files(layout: Layout, remove: Callable[[str], bool] = VolumeFile.remove) -> List[str]:
    """
    Remove every file of the layout, last file first.

    Failures are logged and skipped. Files left behind keep the test prefix and are
    reported as conflicting files before the next run.

    Args:
        layout: The layout of the finished run.
        remove: Removal function, returns False for a file that was already gone.

    Returns:
        Paths that were actually removed.
    """
    removed = []
    for file_spec in reversed(layout.files):
        try:
            if remove(file_spec.path):
                removed.append(file_spec.path)
        except VolumeFileError as e:
            logger.warning(f"Failed to remove test file: {e}")
    if removed:
        logger.info(f"Removed {len(removed)} test file(s)")
    return removed
