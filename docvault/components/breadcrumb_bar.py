from typing import List

from PySide6.QtCore import Signal
from PySide6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QWidget

from docvault.services.navigation import ROOT_PATH, Breadcrumb


class BreadcrumbBar(QWidget):
    """Home button plus one flat button per path segment."""

    # Carries the accumulated path of the clicked segment ('/' for home)
    segment_clicked = Signal(str)

    def __init__(self) -> None:
        super().__init__()
        self._layout = QHBoxLayout()
        self._layout.setContentsMargins(4, 2, 4, 2)
        self._layout.setSpacing(2)
        self.setLayout(self._layout)
        self.buttons: List[QPushButton] = []
        self.set_trail([])

    def _clear(self) -> None:
        while self._layout.count():
            item = self._layout.takeAt(0)
            w = item.widget()
            if w is not None:
                w.deleteLater()
        self.buttons = []

    def _add_button(self, label: str, path: str) -> None:
        btn = QPushButton(label)
        btn.setFlat(True)
        btn.setToolTip(path)
        btn.clicked.connect(lambda _checked=False, p=path: self.segment_clicked.emit(p))
        self._layout.addWidget(btn)
        self.buttons.append(btn)

    def set_trail(self, trail: List[Breadcrumb]) -> None:
        self._clear()
        self._add_button("Home", ROOT_PATH)
        for crumb in trail:
            self._layout.addWidget(QLabel("/"))
            self._add_button(crumb.label, crumb.path)
        self._layout.addStretch(1)

    def labels(self) -> List[str]:
        return [b.text() for b in self.buttons]
