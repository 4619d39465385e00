import logging
from typing import Callable

from PySide6.QtWidgets import (
    QCheckBox,
    QFormLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QWidget,
)

from docvault.config import CREDENTIALS_PATH, Settings, load_settings, save_settings

logger = logging.getLogger(__name__)


class ConnectionForm(QWidget):
    """Server URL, access token, tenant and user id, persisted to credentials.json."""

    def __init__(
        self, callback: Callable[[Settings], None], auto_connect: bool = False
    ) -> None:
        super().__init__()
        self.callback = callback
        self.settings = Settings()
        self.init_ui()
        self.load_config()
        if auto_connect:
            self.try_auto_connect_on_startup()

    def init_ui(self) -> None:
        self.server_input = QLineEdit()
        self.server_input.setPlaceholderText("https://docs.example.com/api")
        self.token_input = QLineEdit()
        self.token_input.setEchoMode(QLineEdit.EchoMode.Password)
        self.tenant_input = QLineEdit()
        self.user_input = QLineEdit()
        self.verify_input = QCheckBox("Verify TLS certificates")
        self.verify_input.setChecked(True)
        self.error_label = QLabel("")
        self.error_label.setStyleSheet("color: #c42b1c;")
        self.connect_btn = QPushButton("Connect")

        layout = QFormLayout()
        layout.addRow("Server", self.server_input)
        layout.addRow("Access token", self.token_input)
        layout.addRow("Tenant", self.tenant_input)
        layout.addRow("User id", self.user_input)
        layout.addRow("", self.verify_input)
        layout.addRow(self.error_label)
        layout.addWidget(self.connect_btn)

        self.connect_btn.clicked.connect(self.on_connect)
        self.setLayout(layout)

    def load_config(self) -> None:
        self.settings = load_settings(CREDENTIALS_PATH)
        self.server_input.setText(self.settings.base_url)
        self.token_input.setText(self.settings.token)
        self.tenant_input.setText(self.settings.tenant_id)
        self.user_input.setText(self.settings.user_id)
        self.verify_input.setChecked(self.settings.verify_tls)

    def current_settings(self) -> Settings:
        s = self.settings
        s.base_url = self.server_input.text().strip()
        s.token = self.token_input.text().strip()
        s.tenant_id = self.tenant_input.text().strip()
        s.user_id = self.user_input.text().strip()
        s.verify_tls = self.verify_input.isChecked()
        return s

    def on_connect(self) -> None:
        settings = self.current_settings()
        if not settings.is_connectable():
            self.error_label.setText("Server and access token are required")
            return
        self.error_label.setText("")
        try:
            save_settings(settings, CREDENTIALS_PATH)
        except OSError:
            logger.exception("Failed to save credentials")
        self.callback(settings)

    def try_auto_connect_on_startup(self) -> bool:
        """Connect with the saved configuration when it is complete."""
        if not self.current_settings().is_connectable():
            return False
        self.on_connect()
        return True
