#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Capacity Tester Errors
Failure flags reported by the volume tester and the exceptions raised by the backend
"""

import errno
from enum import IntFlag


class ErrorFlags(IntFlag):
    """Combinable failure kinds of a test run"""
    UNKNOWN = 0
    CREATE = 1
    PERMISSIONS = 2
    WRITE = 4
    RESIZE = 8
    VERIFY = 16
    FULL = 32
    ABORTED = 64
    CONFLICT = 128

    def describe(self) -> str:
        """Human readable summary of the set flags"""
        if self == ErrorFlags.UNKNOWN:
            return "Unknown error"

        parts = []
        if self & ErrorFlags.ABORTED:
            parts.append("Test aborted")
        if self & ErrorFlags.FULL:
            parts.append("Volume is full")
        if self & ErrorFlags.CONFLICT:
            parts.append("Conflicting test files present")
        if self & ErrorFlags.CREATE:
            if self & ErrorFlags.PERMISSIONS:
                parts.append("Test file could not be created (permission denied)")
            else:
                parts.append("Test file could not be created")
        if self & ErrorFlags.WRITE:
            if self & ErrorFlags.RESIZE:
                parts.append("Test file could not be resized")
            else:
                parts.append("Write error")
        if self & ErrorFlags.VERIFY:
            parts.append("Verification failed")
        return ", ".join(parts)


class CapacityTestError(Exception):
    """Base exception for the capacity tester backend"""
    pass


class LayoutError(CapacityTestError):
    """Invalid sizing passed to the layout planner"""
    pass


class VolumeFileError(CapacityTestError):
    """An I/O call on a test file failed"""

    def __init__(self, message: str, path: str = "", cause: OSError = None):
        super().__init__(message)
        self.path = path
        self.cause = cause

    @property
    def permission_denied(self) -> bool:
        if self.cause is None:
            return False
        if isinstance(self.cause, PermissionError):
            return True
        return self.cause.errno in (errno.EACCES, errno.EPERM)
