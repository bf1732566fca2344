# Copyright (c) 2026 Stephen P Smith
# MIT License

import os
import html
import logging

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QLabel, QWidget, QProgressBar,
    QPushButton, QTextEdit, QCheckBox, QApplication
)
from PySide6.QtCore import QTimer, QSettings
from PySide6.QtGui import QPalette, QTextCursor

logger = logging.getLogger(__name__)

# Progress bars run in permille so volumes larger than 2 GB fit the int range
PROGRESS_STEPS = 1000


def format_size(size_bytes: int) -> str:
    """Format a byte count for display, e.g. '15.99 GB'"""
    if size_bytes < 1024:
        return f"{size_bytes} bytes"
    size = float(size_bytes)
    for unit in ("KB", "MB", "GB", "TB"):
        size /= 1024
        if size < 1024 or unit == "TB":
            break
    return f"{size:.2f} {unit}"


class PhaseProgressWidget(QWidget):
    """Progress bar with speed label for one test phase"""

    def __init__(self, title: str, parent=None):
        super().__init__(parent)
        self.total = 0

        layout = QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.title_label = QLabel(title)
        self.title_label.setMinimumWidth(90)
        layout.addWidget(self.title_label)

        self.bar = QProgressBar()
        self.bar.setRange(0, PROGRESS_STEPS)
        self.bar.setFormat("%p%")
        layout.addWidget(self.bar, 1)

        self.speed_label = QLabel("")
        self.speed_label.setMinimumWidth(100)
        layout.addWidget(self.speed_label)

    def reset(self, total: int = 0):
        self.total = total
        self.bar.setValue(0)
        self.speed_label.setText("")

    def update_progress(self, done: int, avg_mbps: float):
        if self.total > 0:
            self.bar.setValue(min(PROGRESS_STEPS, done * PROGRESS_STEPS // self.total))
        self.speed_label.setText(f"{avg_mbps:.1f} MB/s" if avg_mbps else "")

    def set_complete(self):
        self.bar.setValue(PROGRESS_STEPS)


class LogViewer(QDialog):
    """Dialog to view the application log, refreshed while open"""

    LEVEL_COLORS = {
        " - CRITICAL - ": ("#b71c1c", "#ff5252"),
        " - ERROR - ": ("#d32f2f", "#ff6b6b"),
        " - WARNING - ": ("#e65100", "#ffb74d"),
        " - INFO - ": ("#2e7d32", "#81c784"),
        " - DEBUG - ": ("#757575", "#9e9e9e"),
    }

    def __init__(self, log_path, parent=None):
        super().__init__(parent)
        self.log_path = log_path
        self.setWindowTitle("Application Log")
        self.resize(800, 500)

        self.settings = QSettings('CapacityTester', 'Settings')
        self._last_stat = None

        layout = QVBoxLayout(self)

        self.text_edit = QTextEdit()
        self.text_edit.setReadOnly(True)
        word_wrap = self.settings.value('log_word_wrap', False, type=bool)
        self.set_word_wrap(word_wrap)
        layout.addWidget(self.text_edit)

        self.load_log()

        self.timer = QTimer(self)
        self.timer.timeout.connect(self.check_update)
        self.timer.start(1000)

        btn_layout = QHBoxLayout()
        self.wrap_cb = QCheckBox("Word Wrap")
        self.wrap_cb.setChecked(word_wrap)
        self.wrap_cb.toggled.connect(self.on_word_wrap_toggled)
        btn_layout.addWidget(self.wrap_cb)
        btn_layout.addStretch()

        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        btn_layout.addWidget(close_btn)
        layout.addLayout(btn_layout)

    def set_word_wrap(self, enabled):
        if enabled:
            self.text_edit.setLineWrapMode(QTextEdit.LineWrapMode.WidgetWidth)
        else:
            self.text_edit.setLineWrapMode(QTextEdit.LineWrapMode.NoWrap)

    def on_word_wrap_toggled(self, checked):
        self.set_word_wrap(checked)
        self.settings.setValue('log_word_wrap', checked)

    def check_update(self):
        """Reload if the log file has changed"""
        try:
            stat = os.stat(self.log_path)
        except OSError:
            return
        if (stat.st_mtime, stat.st_size) != self._last_stat:
            self.load_log()

    def load_log(self):
        try:
            stat = os.stat(self.log_path)
            with open(self.log_path, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except OSError as e:
            self.text_edit.setText(f"Cannot read log file: {e}")
            return
        self._last_stat = (stat.st_mtime, stat.st_size)

        palette = QApplication.instance().palette()
        is_dark = palette.color(QPalette.ColorRole.Base).lightness() < 128

        parts = ['<html><body style="font-family: Consolas, monospace; font-size: 10pt;">']
        for line in lines:
            if not line.strip():
                continue
            color = "#ffffff" if is_dark else "#000000"
            for marker, (light, dark) in self.LEVEL_COLORS.items():
                if marker in line:
                    color = dark if is_dark else light
                    break
            parts.append(f'<span style="color:{color};">{html.escape(line)}</span><br>')
        parts.append('</body></html>')

        self.text_edit.setHtml("".join(parts))
        self.text_edit.moveCursor(QTextCursor.MoveOperation.End)
