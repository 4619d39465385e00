import logging
import os

from PySide6.QtCore import Qt
from PySide6.QtGui import QFont
from PySide6.QtWidgets import QApplication, QDockWidget, QMainWindow, QWidget

from docvault.components.explorer import Explorer
from docvault.config import configure_logging


class MainWindow(QMainWindow):
    def __init__(self, app: QApplication) -> None:
        super().__init__()
        self.setWindowTitle("DocVault")
        self.setCentralWidget(QWidget())

        font = QFont()
        font.setPixelSize(13)
        app.setFont(font)

        explorer_dock = QDockWidget("Explorer", self)
        explorer_dock.setObjectName("ExplorerDock")
        explorer_dock.setAllowedAreas(
            Qt.DockWidgetArea.LeftDockWidgetArea | Qt.DockWidgetArea.RightDockWidgetArea
        )
        self.explorer = Explorer()
        explorer_dock.setWidget(self.explorer)

        self.addDockWidget(Qt.DockWidgetArea.LeftDockWidgetArea, explorer_dock)
        self.resize(960, 640)


if __name__ == "__main__":
    configure_logging(logging.DEBUG if os.getenv("DOCVAULT_DEBUG") else logging.INFO)
    app = QApplication([])
    window = MainWindow(app)
    window.show()
    app.exec()
