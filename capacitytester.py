#!/usr/bin/env python3

# Copyright (c) 2026 Stephen P Smith
# MIT License

"""
CapacityTester
A GUI tool that detects fake or failing USB drives and memory cards by filling a volume and reading it back
"""

import os
import sys
import logging
from typing import Optional

from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QGridLayout,
    QComboBox, QLabel, QListWidget, QListWidgetItem, QMessageBox, QStatusBar,
    QToolBar, QStyle, QGroupBox
)
from PySide6.QtCore import Qt, QSettings, QSize, QThread
from PySide6.QtGui import QAction, QKeySequence, QColor

from capacity_backend.errors import ErrorFlags, VolumeFileError
from capacity_backend.tester import VolumeTester
from capacity_backend.volume import Volume
from capacity_backend.volume_file import VolumeFile

from gui.components import PhaseProgressWidget, LogViewer, format_size
from gui.about import about_html

LOG_FILE = "capacitytester.log"


class CapacityTesterWindow(QMainWindow):
    """Main window: volume selection, test control and progress"""

    def setup_logging(self):
        """Configure application-wide logging"""
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(filename)s:%(lineno)d - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, mode='w'),
                logging.StreamHandler()
            ]
        )
        self.logger = logging.getLogger("CapacityTester")

    def __init__(self, mountpoint: Optional[str] = None):
        super().__init__()

        # Settings
        self.settings = QSettings('CapacityTester', 'Settings')
        self.confirm_delete_conflicts = self.settings.value('confirm_delete_conflicts', True, type=bool)

        self.setup_logging()
        self.logger.info("Application started")

        self.tester: Optional[VolumeTester] = None
        self.worker_thread: Optional[QThread] = None
        self.log_viewer = None
        self._first_error = None

        self.setup_ui()
        self.restore_settings()

        self.refresh_mountpoints(mountpoint or self.settings.value('last_mountpoint', '', type=str))

    def restore_settings(self):
        geometry = self.settings.value('window_geometry')
        if geometry:
            self.restoreGeometry(geometry)

    def setup_ui(self):
        """Create the user interface"""
        self.setWindowTitle("CapacityTester")
        self.setGeometry(400, 200, 640, 520)
        self.setWindowIcon(self.style().standardIcon(QStyle.StandardPixmap.SP_DriveHDIcon))

        self.create_toolbar()

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        # Volume selection
        volume_layout = QHBoxLayout()
        volume_layout.addWidget(QLabel("Volume:"))
        self.volume_combo = QComboBox()
        self.volume_combo.currentIndexChanged.connect(self.update_volume_info)
        volume_layout.addWidget(self.volume_combo, 1)
        layout.addLayout(volume_layout)

        # Volume information
        info_box = QGroupBox("Volume Information")
        info_layout = QGridLayout(info_box)
        self.label_value = QLabel("-")
        self.total_value = QLabel("-")
        self.used_value = QLabel("-")
        self.available_value = QLabel("-")
        for row, (title, widget) in enumerate([("Label:", self.label_value),
                                               ("Capacity:", self.total_value),
                                               ("Used:", self.used_value),
                                               ("Available:", self.available_value)]):
            info_layout.addWidget(QLabel(title), row, 0)
            info_layout.addWidget(widget, row, 1)
        layout.addWidget(info_box)

        # Root directory listing, should be empty
        files_box = QGroupBox("Files in Volume Root")
        files_layout = QVBoxLayout(files_box)
        self.files_list = QListWidget()
        files_layout.addWidget(self.files_list)
        layout.addWidget(files_box, 1)

        # Progress
        progress_box = QGroupBox("Progress")
        progress_layout = QVBoxLayout(progress_box)
        self.init_progress = PhaseProgressWidget("Initializing")
        self.write_progress = PhaseProgressWidget("Writing")
        self.verify_progress = PhaseProgressWidget("Verifying")
        for widget in (self.init_progress, self.write_progress, self.verify_progress):
            progress_layout.addWidget(widget)
        layout.addWidget(progress_box)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_bar.showMessage("Select a volume to test.")

    def create_toolbar(self):
        """Create the main toolbar"""
        toolbar = QToolBar("Main Toolbar")
        toolbar.setObjectName("MainToolbar")
        toolbar.setIconSize(QSize(24, 24))
        toolbar.setMovable(False)
        toolbar.setToolButtonStyle(Qt.ToolButtonStyle.ToolButtonTextUnderIcon)
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, toolbar)

        self.refresh_action = QAction(self.style().standardIcon(QStyle.StandardPixmap.SP_BrowserReload), "Refresh", self)
        self.refresh_action.setShortcut(QKeySequence.StandardKey.Refresh)
        self.refresh_action.setStatusTip("Reload the list of mounted volumes")
        self.refresh_action.triggered.connect(lambda: self.refresh_mountpoints(self.volume_combo.currentText()))
        toolbar.addAction(self.refresh_action)

        toolbar.addSeparator()

        self.start_action = QAction(self.style().standardIcon(QStyle.StandardPixmap.SP_MediaPlay), "Start", self)
        self.start_action.setStatusTip("Start testing the selected volume")
        self.start_action.triggered.connect(self.start_test)
        toolbar.addAction(self.start_action)

        self.stop_action = QAction(self.style().standardIcon(QStyle.StandardPixmap.SP_MediaStop), "Stop", self)
        self.stop_action.setStatusTip("Stop the running test")
        self.stop_action.setEnabled(False)
        self.stop_action.triggered.connect(self.stop_test)
        toolbar.addAction(self.stop_action)

        toolbar.addSeparator()

        log_action = QAction(self.style().standardIcon(QStyle.StandardPixmap.SP_FileDialogDetailedView), "Log", self)
        log_action.setStatusTip("Show the application log")
        log_action.triggered.connect(self.show_log)
        toolbar.addAction(log_action)

        about_action = QAction(self.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxInformation), "About", self)
        about_action.triggered.connect(self.show_about)
        toolbar.addAction(about_action)

    @property
    def is_running(self) -> bool:
        return self.worker_thread is not None

    def current_volume(self) -> Optional[Volume]:
        mountpoint = self.volume_combo.currentText()
        if not mountpoint:
            return None
        return Volume(mountpoint)

    def refresh_mountpoints(self, select: str = ""):
        """Fill the volume list, keeping select as the current entry if still mounted"""
        self.volume_combo.blockSignals(True)
        try:
            self.volume_combo.clear()
            mountpoints = Volume.available_mountpoints()
            self.volume_combo.addItems(mountpoints)
            if select in mountpoints:
                self.volume_combo.setCurrentIndex(mountpoints.index(select))
        finally:
            self.volume_combo.blockSignals(False)
        self.update_volume_info()

    def update_volume_info(self):
        volume = self.current_volume()
        self.files_list.clear()

        if volume is None or not volume.is_valid():
            for widget in (self.label_value, self.total_value, self.used_value, self.available_value):
                widget.setText("-")
            self.start_action.setEnabled(False)
            return

        self.label_value.setText(volume.label())
        self.total_value.setText(format_size(volume.bytes_total()))
        self.used_value.setText(format_size(volume.bytes_used()))
        self.available_value.setText(format_size(volume.bytes_available()))

        conflicts = set(volume.conflict_files(VolumeTester.FILE_PREFIX))
        for name in volume.entry_names():
            item = QListWidgetItem(name)
            if name in conflicts:
                item.setForeground(QColor("#d32f2f"))
                item.setToolTip("Leftover test file, must be deleted before testing")
            self.files_list.addItem(item)

        self.start_action.setEnabled(not self.is_running)

    def delete_conflict_files(self, volume: Volume, names) -> bool:
        """Remove leftover test files after confirmation"""
        if self.confirm_delete_conflicts:
            reply = QMessageBox.question(
                self,
                "Leftover Test Files",
                f"The volume contains {len(names)} test file(s), probably left over from "
                f"an interrupted test:\n\n{chr(10).join(names[:10])}\n\nDelete them?",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
            )
            if reply != QMessageBox.StandardButton.Yes:
                return False

        for name in names:
            if name.endswith("/"):
                QMessageBox.warning(self, "Cannot Delete", f"'{name}' is a directory. Please remove it manually.")
                return False
            try:
                VolumeFile.remove(os.path.join(volume.mountpoint, name))
                self.logger.info(f"Deleted leftover test file {name}")
            except VolumeFileError as e:
                self.logger.warning(f"Failed to delete {name}: {e}")
                QMessageBox.critical(self, "Delete Failed", f"Could not delete '{name}'.\n\n{e}")
                return False
        return True

    def start_test(self):
        if self.is_running:
            return

        volume = self.current_volume()
        if volume is None or not volume.is_valid():
            QMessageBox.warning(self, "Invalid Volume", "The selected volume is not mounted anymore.")
            self.refresh_mountpoints()
            return

        conflicts = volume.conflict_files(VolumeTester.FILE_PREFIX)
        if conflicts and not self.delete_conflict_files(volume, conflicts):
            self.update_volume_info()
            return

        others = [n for n in volume.entry_names() if not n.startswith(VolumeTester.FILE_PREFIX)]
        if others:
            reply = QMessageBox.question(
                self,
                "Volume Not Empty",
                f"The volume contains {len(others)} other file(s). Only the free space "
                "can be tested, so the result may be inaccurate.\n\nTest anyway?",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
            )
            if reply != QMessageBox.StandardButton.Yes:
                return

        self.settings.setValue('last_mountpoint', volume.mountpoint)
        self.logger.info(f"Testing {volume.label()}")

        self._first_error = None
        total = volume.bytes_available()
        for widget in (self.init_progress, self.write_progress, self.verify_progress):
            widget.reset(total)

        # The tester runs in its own thread, its progress signals arrive queued.
        # quit() runs in the worker, closeEvent may be blocking the GUI thread.
        self.worker_thread = QThread(self)
        self.tester = VolumeTester(volume)
        self.tester.moveToThread(self.worker_thread)

        self.worker_thread.started.connect(self.tester.start)
        self.tester.finished.connect(self.worker_thread.quit, Qt.ConnectionType.DirectConnection)
        self.worker_thread.finished.connect(self.on_thread_finished)

        self.tester.initialization_started.connect(self.on_initialization_started)
        self.tester.initialized.connect(self.init_progress.update_progress)
        self.tester.write_started.connect(self.on_write_started)
        self.tester.written.connect(self.write_progress.update_progress)
        self.tester.verify_started.connect(self.on_verify_started)
        self.tester.verified.connect(self.verify_progress.update_progress)
        self.tester.create_failed.connect(self.on_create_failed)
        self.tester.write_failed.connect(self.on_write_failed)
        self.tester.verify_failed.connect(self.on_verify_failed)
        self.tester.succeeded.connect(self.on_succeeded)
        self.tester.failed.connect(self.on_failed)

        self.set_running(True)
        self.worker_thread.start()

    def stop_test(self):
        if self.tester is not None:
            self.tester.cancel()
            self.stop_action.setEnabled(False)
            self.status_bar.showMessage("Stopping test...")

    def set_running(self, running: bool):
        self.start_action.setEnabled(not running)
        self.stop_action.setEnabled(running)
        self.refresh_action.setEnabled(not running)
        self.volume_combo.setEnabled(not running)

    def on_initialization_started(self, total):
        for widget in (self.init_progress, self.write_progress, self.verify_progress):
            widget.reset(total)
        self.status_bar.showMessage(f"Initializing {format_size(total)}...")

    def on_write_started(self):
        self.init_progress.set_complete()
        self.status_bar.showMessage("Writing test data...")

    def on_verify_started(self):
        self.write_progress.set_complete()
        self.status_bar.showMessage("Verifying test data...")

    def _remember_error(self, offset):
        if self._first_error is None:
            self._first_error = offset

    def on_create_failed(self, file_index, offset):
        self._remember_error(offset)
        self.logger.error(f"Could not create test file #{file_index} (offset {offset})")

    def on_write_failed(self, offset, size):
        self._remember_error(offset)

    def on_verify_failed(self, offset, size):
        self._remember_error(offset)

    def on_succeeded(self):
        self.verify_progress.set_complete()
        self.status_bar.showMessage("Test passed.")
        QMessageBox.information(
            self, "Test Passed",
            "The test completed successfully. No errors were detected, "
            "the entire available space can be used."
        )

    def on_failed(self, flags):
        error = ErrorFlags(flags)
        if error & ErrorFlags.ABORTED:
            self.status_bar.showMessage("Test aborted.")
            return

        message = f"The test failed: {error.describe()}."
        if error & ErrorFlags.PERMISSIONS:
            message += "\n\nYou may not have write access to this volume."
        if self._first_error is not None and error & (ErrorFlags.WRITE | ErrorFlags.VERIFY | ErrorFlags.CREATE):
            message += (f"\n\nThe device loses data starting at byte {self._first_error} "
                        f"({format_size(self._first_error)}). Only the space before this "
                        "offset can be trusted.")
        self.status_bar.showMessage("Test failed.")
        QMessageBox.critical(self, "Test Failed", message)

    def on_thread_finished(self):
        self.tester.deleteLater()
        self.worker_thread.deleteLater()
        self.tester = None
        self.worker_thread = None
        self.set_running(False)
        self.update_volume_info()

    def show_log(self):
        if self.log_viewer is None:
            self.log_viewer = LogViewer(os.path.abspath(LOG_FILE), self)
        self.log_viewer.show()
        self.log_viewer.raise_()

    def show_about(self):
        QMessageBox.about(self, "About CapacityTester", about_html)

    def closeEvent(self, event):
        """Stop a running test and save state"""
        if self.is_running:
            reply = QMessageBox.question(
                self, "Test Running",
                "A test is running. Stop it and quit?",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
            )
            if reply != QMessageBox.StandardButton.Yes:
                event.ignore()
                return
            thread = self.worker_thread
            self.tester.cancel()
            # Wait for the current block and the cleanup. A cancel that lands
            # before the run has reset its state is lost, so repeat it.
            while not thread.wait(100):
                self.tester.cancel()

        self.settings.setValue('window_geometry', self.saveGeometry())
        event.accept()


def main():
    """Main entry point"""
    app = QApplication(sys.argv)
    app.setApplicationName("CapacityTester")
    app.setOrganizationName("CapacityTester")
    app.setStyle('Fusion')

    mountpoint = sys.argv[1] if len(sys.argv) > 1 else None
    window = CapacityTesterWindow(mountpoint)
    window.show()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
