from __future__ import annotations
import sys
from PySide6 import QtWidgets
from bdyn.logging_conf import configure_logging
from bdyn.settings import AppSettings
from bdyn.session import SessionStore
from bdyn.sink import open_sink
from bdyn.gui import MainWindow


def main() -> int:
    configure_logging()
    app = QtWidgets.QApplication(sys.argv)
    app.setApplicationName("BDyn")
    settings = AppSettings.load()
    sink = open_sink(settings.storage)
    win = MainWindow(settings, sink, SessionStore())
    win.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
