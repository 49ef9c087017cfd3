from __future__ import annotations
from typing import Dict, List, Optional
from PySide6 import QtWidgets, QtCore, QtGui

from .dashboard import DashboardModel, FAILED, READY
from .errors import CaptureError, MissingSession, WriteFailure
from .hooks import InputHooks
from .models import TaskType, task_type_for_route
from .recorder import Recorder, WriteDispatcher
from .reports import write_json, write_html
from .session import SessionStore
from .settings import AppSettings
from .sink import Sink

import logging
logger = logging.getLogger(__name__)

ROUTES = ["/login", "/form", "/interactive", "/browsing", "/dashboard"]

_INSTRUCTIONS = {
    "/login": "Type a made-up user name and password into the box, then press Complete task.",
    "/form": "Type a short made-up address into the box as you normally would.",
    "/interactive": "Click around the screen, then jot a short note in the box.",
    "/browsing": "Move the pointer as if reading a page, then write what you would look for.",
}

# Stylesheets per UISettings.theme; unknown names fall back to the platform look.
_THEMES = {
    "light": "",
    "dark": (
        "QWidget{background:#15161a;color:#e4e4e7;}"
        " QPlainTextEdit, QGroupBox{background:#1e1f24;border:1px solid #2e3038;border-radius:8px;padding:6px;}"
        " QPushButton:checked{background:#2f6f6f;color:#fff;}"
    ),
    "high_contrast": (
        "QWidget{background:#000;color:#fff;}"
        " QPlainTextEdit, QGroupBox{border:2px solid #fff;}"
        " QPushButton{background:#fff;color:#000;font-weight:bold;}"
        " QPushButton:checked{background:#ff0;}"
    ),
}

# Simple sparkline widget
class Sparkline(QtWidgets.QWidget):
    def __init__(self, color: QtGui.QColor, parent=None):
        super().__init__(parent)
        self.data: List[float] = []
        self.color = color
        self.setMinimumHeight(64)

    def update_data(self, values: List[float]):
        self.data = values[-200:]
        self.update()

    def paintEvent(self, e: QtGui.QPaintEvent) -> None:
        p = QtGui.QPainter(self)
        p.setRenderHint(QtGui.QPainter.Antialiasing)
        rect = self.rect().adjusted(4, 4, -4, -4)
        p.fillRect(self.rect(), QtGui.QColor(22,22,26))
        if not self.data:
            return
        lo = min(min(self.data), 0.0)
        span = (max(self.data) - lo) or 1.0
        step = rect.width() / max(len(self.data)-1, 1)
        path = QtGui.QPainterPath()
        for i, v in enumerate(self.data):
            x = rect.left() + i*step
            y = rect.bottom() - ((v - lo)/span)*rect.height()
            if i == 0:
                path.moveTo(x, y)
            else:
                path.lineTo(x, y)
        p.setPen(QtGui.QPen(self.color, 2))
        p.drawPath(path)

class SettingsDialog(QtWidgets.QDialog):
    def __init__(self, settings: AppSettings, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.settings = settings
        layout = QtWidgets.QFormLayout(self)

        self.backend = QtWidgets.QComboBox(); self.backend.addItems(["sqlite", "memory", "rest"])
        self.backend.setCurrentText(self.settings.storage.backend)
        self.db_path = QtWidgets.QLineEdit(self.settings.storage.db_path)
        self.rest_url = QtWidgets.QLineEdit(self.settings.storage.rest_url)
        self.rest_key = QtWidgets.QLineEdit(self.settings.storage.rest_key)
        self.rest_key.setEchoMode(QtWidgets.QLineEdit.Password)
        self.workers = QtWidgets.QSpinBox(); self.workers.setRange(1, 64); self.workers.setValue(self.settings.capture.write_workers)

        self.theme = QtWidgets.QComboBox(); self.theme.addItems(["light","dark","high_contrast"])
        self.theme.setCurrentText(self.settings.ui.theme)

        layout.addRow("Storage backend", self.backend)
        layout.addRow("Database file", self.db_path)
        layout.addRow("REST URL", self.rest_url)
        layout.addRow("REST API key", self.rest_key)
        layout.addRow("Concurrent writes", self.workers)
        layout.addRow("Theme", self.theme)
        layout.addRow(QtWidgets.QLabel("Storage changes apply on next start."))

        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)
        layout.addRow(btns)

    def accept(self) -> None:
        self.settings.storage.backend = self.backend.currentText()
        self.settings.storage.db_path = self.db_path.text().strip() or self.settings.storage.db_path
        self.settings.storage.rest_url = self.rest_url.text().strip()
        self.settings.storage.rest_key = self.rest_key.text().strip()
        self.settings.capture.write_workers = int(self.workers.value())
        self.settings.ui.theme = self.theme.currentText()
        self.settings.save()
        super().accept()

class ConsentDialog(QtWidgets.QDialog):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Consent Required")
        self.setModal(True)
        layout = QtWidgets.QVBoxLayout(self)
        label = QtWidgets.QLabel(
            """
            <b>BDyn records how you type and move the pointer</b> while the task screens are open:
            key names with press/release times, pointer positions, speed and clicks.
            <br>Recording stops when you leave a task screen.
            <br>By clicking <b>Accept</b>, you consent to this collection for the current session.
            """
        )
        label.setWordWrap(True)
        layout.addWidget(label)
        btns = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Cancel | QtWidgets.QDialogButtonBox.Ok)
        btns.button(QtWidgets.QDialogButtonBox.Ok).setText("Accept")
        btns.button(QtWidgets.QDialogButtonBox.Cancel).setText("Decline")
        layout.addWidget(btns)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)

class TaskScreen(QtWidgets.QWidget):
    completed = QtCore.Signal()

    def __init__(self, route: str, parent=None):
        super().__init__(parent)
        self.route = route
        lay = QtWidgets.QVBoxLayout(self)
        title = QtWidgets.QLabel(f"{task_type_for_route(route).value.title()} Task")
        f = title.font(); f.setPointSize(20); title.setFont(f)
        lay.addWidget(title)
        lay.addWidget(QtWidgets.QLabel(_INSTRUCTIONS.get(route, "")))
        self.scratch = QtWidgets.QPlainTextEdit()
        lay.addWidget(self.scratch, 1)
        self.done_btn = QtWidgets.QPushButton("Complete task")
        self.done_btn.clicked.connect(lambda: self.completed.emit())
        lay.addWidget(self.done_btn, 0, QtCore.Qt.AlignRight)

class DashboardScreen(QtWidgets.QWidget):
    def __init__(self, model: DashboardModel, parent=None):
        super().__init__(parent)
        self.model = model
        root = QtWidgets.QVBoxLayout(self)

        self.task_bar = QtWidgets.QHBoxLayout()
        self.task_btns: Dict[TaskType, QtWidgets.QPushButton] = {}
        root.addLayout(self.task_bar)

        self.message = QtWidgets.QLabel("Loading statistics...")
        self.message.setAlignment(QtCore.Qt.AlignCenter)
        root.addWidget(self.message)

        self.body = QtWidgets.QWidget()
        grid = QtWidgets.QGridLayout(self.body)
        self.kpis: Dict[str, QtWidgets.QLabel] = {}
        names = [("keys", "Total Keystrokes"), ("dwell", "Avg. Dwell Time (ms)"),
                 ("pointer", "Pointer Events"), ("speed", "Avg. Speed (px/ms)"),
                 ("done", "Completion Time (ms)")]
        for col, (key, text) in enumerate(names):
            lbl = QtWidgets.QLabel("0")
            f = lbl.font(); f.setPointSize(16); lbl.setFont(f)
            self.kpis[key] = lbl
            grid.addWidget(QtWidgets.QLabel(text), 0, col); grid.addWidget(lbl, 1, col)

        key_card = QtWidgets.QGroupBox("Dwell time per keystroke (ms)")
        self.spark_keys = Sparkline(QtGui.QColor(75, 192, 192))
        QtWidgets.QVBoxLayout(key_card).addWidget(self.spark_keys)
        mouse_card = QtWidgets.QGroupBox("Pointer speed per move (px/ms)")
        self.spark_mouse = Sparkline(QtGui.QColor(153, 102, 255))
        QtWidgets.QVBoxLayout(mouse_card).addWidget(self.spark_mouse)
        grid.addWidget(key_card, 2, 0, 1, 5)
        grid.addWidget(mouse_card, 3, 0, 1, 5)
        root.addWidget(self.body, 1)

        self.refresh_btn = QtWidgets.QPushButton("Refresh")
        self.refresh_btn.clicked.connect(self.reload)
        root.addWidget(self.refresh_btn, 0, QtCore.Qt.AlignRight)

    def reload(self):
        self.message.setText("Loading statistics..."); self.message.show(); self.body.hide()
        self.model.load()
        self.render()

    def choose(self, task_type: TaskType):
        self.model.select(task_type)
        self.render()

    def render(self):
        m = self.model
        if m.status == FAILED:
            self.message.setText(m.error or ""); self.message.show(); self.body.hide()
            return
        if m.status != READY:
            return
        if not self.task_btns:
            for task in m.summaries:
                btn = QtWidgets.QPushButton(f"{task.value.title()} Task")
                btn.setCheckable(True)
                btn.clicked.connect(lambda _=False, t=task: self.choose(t))
                self.task_btns[task] = btn
                self.task_bar.addWidget(btn)
        for task, btn in self.task_btns.items():
            btn.setChecked(task == m.selected_task)

        s = m.selected
        if s is None:
            self.message.setText("No data available for analysis"); self.message.show(); self.body.hide()
            return
        self.message.setVisible(not m.has_data(s))
        self.message.setText("No data recorded for this task yet.")
        self.body.show()
        self.kpis["keys"].setText(str(s.keystroke_count))
        self.kpis["dwell"].setText(f"{s.avg_dwell_ms:.0f}")
        self.kpis["pointer"].setText(str(s.pointer_count))
        self.kpis["speed"].setText(f"{s.avg_speed:.2f}")
        self.kpis["done"].setText(str(s.completion_time))
        self.spark_keys.update_data([p.dwell_time for p in s.keystroke_patterns])
        self.spark_mouse.update_data([p.speed for p in s.pointer_movements])

class MainWindow(QtWidgets.QMainWindow):
    record_signal = QtCore.Signal()

    def __init__(self, settings: AppSettings, sink: Sink, session: SessionStore):
        super().__init__()
        self.settings = settings
        self.sink = sink
        self.session = session
        self.setWindowTitle("BDyn — Behavioral Task Telemetry")
        self.setMinimumSize(900, 600)

        self.dispatcher = WriteDispatcher(sink, max_workers=settings.capture.write_workers)
        # on_record runs on listener threads; the signal hops to the UI thread.
        self.rec = Recorder(sink, self.dispatcher, on_record=lambda _r: self.record_signal.emit())
        self.hooks = InputHooks(self.rec, keyboard_enabled=settings.capture.keyboard,
                                pointer_enabled=settings.capture.pointer)
        self.captured = 0
        self.record_signal.connect(self._count_record)

        self.stack = QtWidgets.QStackedWidget(); self.setCentralWidget(self.stack)
        self.screens: Dict[str, QtWidgets.QWidget] = {}
        for route in ROUTES[:-1]:
            screen = TaskScreen(route)
            screen.completed.connect(lambda r=route: self.complete_task(r))
            self.screens[route] = screen
            self.stack.addWidget(screen)
        self.dashboard = DashboardScreen(DashboardModel(sink, self.session.get))
        self.screens["/dashboard"] = self.dashboard
        self.stack.addWidget(self.dashboard)
        self.route: Optional[str] = None

        # Status bar + menu
        self.status = self.statusBar()
        menu = self.menuBar()
        filem = menu.addMenu("&File")
        act_export = filem.addAction("Export Reports")
        act_export.triggered.connect(self.export_reports)
        act_new = filem.addAction("New Session")
        act_new.triggered.connect(self.new_session)
        filem.addSeparator()
        act_quit = filem.addAction("Exit")
        act_quit.triggered.connect(self.close)

        gom = menu.addMenu("&Go")
        for route in ROUTES:
            act = gom.addAction(route.strip("/").title())
            act.triggered.connect(lambda _=False, r=route: self.navigate(r))

        prefm = menu.addMenu("&Preferences")
        act_settings = prefm.addAction("Settings…")
        act_settings.triggered.connect(self.open_settings)

        helpm = menu.addMenu("&Help")
        act_about = helpm.addAction("About")
        act_about.triggered.connect(self.about)

        self.apply_theme(self.settings.ui.theme)

        # Consent on first run
        if not self.settings.consent_accepted:
            dlg = ConsentDialog(self)
            if dlg.exec() == QtWidgets.QDialog.Accepted:
                self.settings.consent_accepted = True
                self.settings.save()
            else:
                QtWidgets.QMessageBox.warning(self, "Consent not granted", "BDyn requires consent to run. Exiting.")
                QtCore.QTimer.singleShot(0, self.close)
                return

        self.navigate(ROUTES[0])

    # THEME
    def apply_theme(self, theme: str):
        self.setStyleSheet(_THEMES.get(theme, ""))

    # NAVIGATION
    def navigate(self, route: str):
        # Tear down the previous screen's capture before anything else.
        self.hooks.stop()
        self.rec.detach()
        self.route = route
        self.stack.setCurrentWidget(self.screens[route])
        if route == "/dashboard":
            self.dashboard.reload()
            self.status.showMessage("Dashboard")
            return
        try:
            self.rec.attach(self.session.get_or_create(), task_type_for_route(route))
        except MissingSession as e:
            QtWidgets.QMessageBox.critical(self, "No session", str(e))
            return
        self.captured = 0
        self.hooks.start()
        self.status.showMessage(f"Recording {self.rec.task_type.value} task")

    def complete_task(self, route: str):
        if route != self.route:
            return
        try:
            done = self.rec.complete()
        except (WriteFailure, CaptureError) as e:
            logger.warning("Completion of %s not saved: %s", route, e)
            QtWidgets.QMessageBox.warning(self, "Could not save task", str(e))
            return
        self.status.showMessage(f"{done.task_type.value.title()} task done in {done.duration / 1000:.1f}s")
        self.navigate(ROUTES[ROUTES.index(route) + 1])

    def _count_record(self):
        self.captured += 1
        if self.rec.task_type is not None:
            self.status.showMessage(f"Recording {self.rec.task_type.value} task • {self.captured} events")

    # ACTIONS
    def new_session(self):
        self.hooks.stop()
        self.rec.detach()
        self.session.clear()
        self.dashboard.model.selected_task = None
        self.navigate(ROUTES[0])

    def about(self):
        QtWidgets.QMessageBox.information(self, "About BDyn",
            "BDyn records keystroke timing and pointer dynamics per task screen\nand summarizes them per task.")

    def open_settings(self):
        dlg = SettingsDialog(self.settings, self)
        if dlg.exec() == QtWidgets.QDialog.Accepted:
            self.apply_theme(self.settings.ui.theme)
            self.status.showMessage("Settings saved.")

    def export_reports(self):
        model = self.dashboard.model
        model.load()
        if model.status != READY:
            QtWidgets.QMessageBox.warning(self, "Nothing to export", model.error or "No data yet.")
            return
        sid = self.session.get()
        j = write_json(sid, model.summaries)
        h = write_html(sid, model.summaries)
        self.status.showMessage(f"Exported: {j} & {h}")

    def closeEvent(self, e: QtGui.QCloseEvent) -> None:
        self.hooks.stop()
        self.rec.detach()
        self.dispatcher.close(wait_for_writes=True)
        self.sink.close()
        super().closeEvent(e)
