#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
Volume Tester
Detects fake or failing storage by filling a mounted filesystem with test files and reading them back.

The filesystem should be empty and span the whole device. A device that claims more
capacity than it has (a "16 GB" stick with a 4 GB chip) usually drops or wraps writes
beyond the real limit without reporting an error. The test has three phases:

1. Initialization: every test file is created, tagged with its id, grown to its
   size and given a sentinel byte at the end. The first and last bytes of all files
   are then checked again (quick test). This takes seconds and already catches most
   fake devices, without telling where the real limit is.
2. Write: every block of every file is written with the test pattern.
3. Verify: every block is read back and compared.

The first failure ends the run and is reported with its byte offset. All test files
are removed afterwards, whatever the outcome.
"""

import time
import logging
import threading
from contextlib import ExitStack
from enum import Enum, auto
from typing import List, Optional, Union

from PySide6.QtCore import QObject, Signal, Slot

from .errors import ErrorFlags, CapacityTestError, LayoutError, VolumeFileError
from .layout import MB, ALIGNMENT, Layout, FileSpec, plan_layout
from .pattern import generate_pattern, block_data
from .volume import Volume
from .volume_file import VolumeFile
from .cleanup import remove_test_files

logger = logging.getLogger(__name__)


class TesterState(Enum):
    IDLE = auto()
    INITIALIZING = auto()
    WRITING = auto()
    VERIFYING = auto()
    SUCCEEDED = auto()
    FAILED = auto()
    CANCELED = auto()

    @property
    def is_running(self) -> bool:
        return self in (TesterState.INITIALIZING, TesterState.WRITING, TesterState.VERIFYING)

    @property
    def is_terminal(self) -> bool:
        return self in (TesterState.SUCCEEDED, TesterState.FAILED, TesterState.CANCELED)


class _Throughput:
    """Running average speed in MB/s over the time spent in I/O"""

    def __init__(self):
        self.mb = 0.0
        self.seconds = 0.0

    def add(self, size: int, seconds: float):
        self.mb += size / MB
        self.seconds += seconds

    @property
    def average(self) -> float:
        return self.mb / self.seconds if self.seconds else 0.0


class VolumeTester(QObject):
    """
    Capacity test of one mounted volume.

    Meant to be moved to a worker thread, start() blocks until the run is over.
    Progress and results are reported through the signals below, in phase order.
    Byte values are absolute offsets on the volume (end of the unit just done).

    Signals:
        initialization_started: (total_bytes)
        initialized: (bytes, avg_mbps)
        write_started: ()
        written: (bytes, avg_mbps)
        verify_started: ()
        verified: (bytes, avg_mbps)
        create_failed: (file_index, offset)
        write_failed: (offset, size)
        verify_failed: (offset, size)
        succeeded: ()
        failed: (error_flags)
        finished: () always last, once per run
    """

    # Offsets and sizes may exceed 32 bits, so they travel as Python objects
    initialization_started = Signal(object)
    initialized = Signal(object, float)
    write_started = Signal()
    written = Signal(object, float)
    verify_started = Signal()
    verified = Signal(object, float)
    create_failed = Signal(int, object)
    write_failed = Signal(object, object)
    verify_failed = Signal(object, object)
    succeeded = Signal()
    failed = Signal(int)
    finished = Signal()

    BLOCK_SIZE_MAX = 16 * MB
    FILE_SIZE_MAX = 512 * MB
    FILE_PREFIX = "CAPACITYTESTER"

    # Written to the last byte of every test file
    SENTINEL = 0xFE

    def __init__(self, volume: Union[Volume, str],
                 block_size_max: Optional[int] = None,
                 file_size_max: Optional[int] = None,
                 file_prefix: Optional[str] = None,
                 use_fsync: bool = True,
                 file_factory=VolumeFile,
                 parent: Optional[QObject] = None):
        super().__init__(parent)

        self.volume = Volume(volume) if isinstance(volume, str) else volume
        self.block_size_max = block_size_max or self.BLOCK_SIZE_MAX
        self.file_size_max = file_size_max or self.FILE_SIZE_MAX
        self.file_prefix = file_prefix or self.FILE_PREFIX
        self.use_fsync = use_fsync
        self._file_factory = file_factory

        if self.block_size_max % ALIGNMENT or self.file_size_max % ALIGNMENT:
            raise LayoutError(f"Block and file sizes must be multiples of {ALIGNMENT} bytes")
        if self.file_size_max <= self.block_size_max:
            raise LayoutError("File size must be larger than block size")

        self._cancel_event = threading.Event()
        self._state = TesterState.IDLE
        self._layout = Layout()
        self._pattern = b""
        self._bytes_total = 0
        self._bytes_written = 0
        self._error_type = ErrorFlags.UNKNOWN

    @property
    def mountpoint(self) -> str:
        return self.volume.mountpoint

    @property
    def state(self) -> TesterState:
        return self._state

    @property
    def layout(self) -> Layout:
        return self._layout

    @property
    def bytes_total(self) -> int:
        return self._bytes_total

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def bytes_remaining(self) -> int:
        return self._bytes_total - self._bytes_written

    @property
    def error_type(self) -> ErrorFlags:
        return self._error_type

    def is_canceled(self) -> bool:
        return self._cancel_event.is_set()

    @Slot()
    def cancel(self):
        """
        Ask the running test to stop.

        Safe to call from any thread. The current file operation completes first,
        then the test files are removed as usual.
        """
        logger.info("Cancel requested")
        self._cancel_event.set()

    def block_data(self, file_index: int, block_index: int) -> bytes:
        """Expected content of a block in the current run"""
        if not self._pattern:
            raise CapacityTestError("No test pattern, test not started")
        return block_data(self._pattern, self._layout.block(file_index, block_index))

    def _reset(self):
        self._cancel_event.clear()
        self._state = TesterState.IDLE
        self._layout = Layout()
        self._pattern = b""
        self._bytes_total = 0
        self._bytes_written = 0
        self._error_type = ErrorFlags.UNKNOWN

    def _fail_early(self, flags: ErrorFlags):
        """End a run that never got to create files"""
        self._error_type |= flags
        self._state = TesterState.FAILED
        logger.error(f"Test not started: {self._error_type.describe()}")
        self.failed.emit(int(self._error_type))
        self.finished.emit()

    @Slot()
    def start(self):
        """
        Run a complete test. Blocks until the run has ended.

        Raises:
            CapacityTestError: If this tester is already running.
        """
        if self._state.is_running:
            raise CapacityTestError("A test is already running")
        self._reset()

        if not self.volume.is_valid():
            self._fail_early(ErrorFlags.UNKNOWN)
            return

        conflicts = self.volume.conflict_files(self.file_prefix)
        if conflicts:
            logger.warning(f"Conflicting files on {self.mountpoint}: {', '.join(conflicts)}")
            self._fail_early(ErrorFlags.CONFLICT)
            return

        self._bytes_total = self.volume.bytes_available()
        if self._bytes_total <= 0:
            # Volume full or size unknown
            self._fail_early(ErrorFlags.FULL)
            return

        logger.info(f"Starting test of {self.mountpoint}: {self._bytes_total} bytes available")
        self._pattern = generate_pattern(self.block_size_max)
        self._layout = plan_layout(self._bytes_total, self.file_size_max, self.block_size_max,
                                   directory=self.mountpoint, prefix=self.file_prefix)

        ok = False
        try:
            with ExitStack() as stack:
                files = []
                for file_spec in self._layout:
                    f = self._file_factory(file_spec.path)
                    stack.callback(f.close)
                    files.append(f)
                ok = self._initialize(files) and self._write_full(files) and self._verify_full(files)
        except Exception:
            logger.exception("Unexpected error during test")
            ok = False
        finally:
            # Handles are closed at this point
            self.delete_files()

        if ok:
            self._state = TesterState.SUCCEEDED
            logger.info(f"Test of {self.mountpoint} succeeded")
            self.succeeded.emit()
        else:
            self._state = TesterState.CANCELED if self._error_type & ErrorFlags.ABORTED else TesterState.FAILED
            logger.info(f"Test of {self.mountpoint} ended: {self._error_type.describe()}")
            self.failed.emit(int(self._error_type))
        self.finished.emit()

    def delete_files(self):
        """Remove all test files of the current layout, then forget the layout"""
        remove_test_files(self._layout, self._file_factory.remove)
        self._layout = Layout()

    def _abort_requested(self) -> bool:
        # Only the worker writes the error flags
        if not self.is_canceled():
            return False
        logger.info("Stopping at cancel request")
        self._error_type |= ErrorFlags.ABORTED
        return True

    def _tag_fits(self, file_spec: FileSpec) -> bool:
        # The tag must not overlap the sentinel byte
        return len(file_spec.tag) < file_spec.size

    def _fail_write(self, offset: int, size: int, flags: ErrorFlags = ErrorFlags.WRITE) -> bool:
        self._error_type |= flags
        logger.error(f"Write failed at offset {offset} ({size} bytes)")
        self.write_failed.emit(offset, size)
        return False

    def _fail_verify(self, offset: int, size: int) -> bool:
        self._error_type |= ErrorFlags.VERIFY
        logger.error(f"Verification failed at offset {offset} ({size} bytes)")
        self.verify_failed.emit(offset, size)
        return False

    def _check_boundaries(self, file_spec: FileSpec, f) -> bool:
        """Check the sentinel byte and the id tag of a test file"""
        try:
            last = f.read_at(file_spec.size - 1, 1)
            head = f.read_at(0, len(file_spec.tag)) if self._tag_fits(file_spec) else file_spec.tag
        except VolumeFileError as e:
            logger.debug(str(e))
            return self._fail_verify(file_spec.offset, file_spec.size)

        if last != bytes([self.SENTINEL]) or head != file_spec.tag:
            return self._fail_verify(file_spec.offset, file_spec.size)
        return True

    def _initialize(self, files: List[VolumeFile]) -> bool:
        """Create all test files and run the quick test"""
        self._state = TesterState.INITIALIZING
        self.initialization_started.emit(self._bytes_total)

        throughput = _Throughput()
        for file_spec, f in zip(self._layout, files):
            try:
                f.open()
            except VolumeFileError as e:
                self._error_type |= ErrorFlags.CREATE
                if e.permission_denied:
                    self._error_type |= ErrorFlags.PERMISSIONS
                logger.error(f"Creating test file failed: {e}")
                self.create_failed.emit(file_spec.index, file_spec.offset)
                return False

            started = time.perf_counter()

            # Id, usually a couple of bytes
            if self._tag_fits(file_spec):
                try:
                    written = f.write_at(0, file_spec.tag)
                except VolumeFileError as e:
                    logger.debug(str(e))
                    written = -1
                if written != len(file_spec.tag):
                    return self._fail_write(file_spec.offset, file_spec.size)

            # Grow to the planned size
            try:
                f.resize(file_spec.size)
            except VolumeFileError as e:
                logger.debug(str(e))
                return self._fail_write(file_spec.offset, file_spec.size,
                                        ErrorFlags.WRITE | ErrorFlags.RESIZE)

            try:
                written = f.write_at(file_spec.size - 1, bytes([self.SENTINEL]))
            except VolumeFileError as e:
                logger.debug(str(e))
                written = -1
            if written != 1:
                return self._fail_write(file_spec.offset, file_spec.size)

            throughput.add(file_spec.size, time.perf_counter() - started)
            self.initialized.emit(file_spec.end, throughput.average)
            logger.debug(f"Initialized {file_spec.path} ({file_spec.size} bytes)")

            # Check right away, no need to create the remaining files if this one is lost
            if not self._check_boundaries(file_spec, f):
                return False

            if self._abort_requested():
                return False

        # Quick test: earlier files may have been overwritten by later ones
        for file_spec, f in zip(self._layout, files):
            if not self._check_boundaries(file_spec, f):
                return False
            if self._abort_requested():
                return False

        logger.info(f"Initialized {len(files)} test files, quick test passed")
        return True

    def _write_full(self, files: List[VolumeFile]) -> bool:
        """Fill all test files with the test pattern"""
        self._state = TesterState.WRITING
        self.write_started.emit()

        throughput = _Throughput()
        for file_spec, f in zip(self._layout, files):
            # May block for a while if the initialized files are still cached
            if self.use_fsync:
                f.sync()

            for block in file_spec.blocks:
                data = block_data(self._pattern, block)

                started = time.perf_counter()
                try:
                    written = f.write_at(block.rel_offset, data)
                except VolumeFileError as e:
                    logger.debug(str(e))
                    written = -1
                if written != block.size:
                    return self._fail_write(block.abs_offset, block.size)

                if self.use_fsync:
                    f.sync()

                throughput.add(block.size, time.perf_counter() - started)
                self._bytes_written += block.size
                self.written.emit(block.abs_end, throughput.average)

                if self._abort_requested():
                    return False

        logger.info(f"Wrote {self._bytes_written} bytes")
        return True

    def _verify_full(self, files: List[VolumeFile]) -> bool:
        """Read back all blocks and compare them with the test pattern"""
        self._state = TesterState.VERIFYING
        self.verify_started.emit()

        throughput = _Throughput()
        verified = 0
        for file_spec, f in zip(self._layout, files):
            # Don't let reads be served from the write cache only
            if self.use_fsync:
                f.sync()

            for block in file_spec.blocks:
                expected = block_data(self._pattern, block)

                started = time.perf_counter()
                try:
                    data = f.read_at(block.rel_offset, block.size)
                except VolumeFileError as e:
                    logger.debug(str(e))
                    data = None
                if data != expected:
                    return self._fail_verify(block.abs_offset, block.size)

                throughput.add(block.size, time.perf_counter() - started)
                verified += block.size
                self.verified.emit(block.abs_end, throughput.average)

                if self._abort_requested():
                    return False

        logger.info(f"Verified {verified} bytes")
        return True
