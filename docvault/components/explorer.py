from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, List, Optional, Tuple

from PySide6.QtWidgets import (
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QHBoxLayout,
    QInputDialog,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QStyle,
    QVBoxLayout,
    QWidget,
)

from docvault.config import CREDENTIALS_PATH, Settings, load_settings, save_settings
from docvault.errors import PartialUploadFailure
from docvault.models import FileNode, FolderNode, Scope, ScopeKind
from docvault.services.file_manager import FileManager
from docvault.services.navigation import ROOT_PATH
from docvault.services.tree_builder import walk
from docvault.services.uploads import PendingFile, UploadBatch

from .connection_form import ConnectionForm
from .file_tree_viewer import FileExplorer
from .upload_panel import UploadPanel

logger = logging.getLogger(__name__)

# Combo label -> scope kind
SCOPE_CHOICES = [
    ("Public documents", ScopeKind.PUBLIC_DOCUMENTS),
    ("Library", ScopeKind.LIBRARY),
    ("User files", ScopeKind.USER_FILES),
]
SORT_CHOICES = [("Name", "name"), ("Date", "date"), ("Size", "size"), ("Type", "type")]

ManagerFactory = Callable[[Settings], FileManager]


class Explorer(QWidget):
    """Single-widget UI hosting scope selection, actions, the listing and uploads.

    Top bar elements:
    - Scope dropdown plus library/user id
    - Back / forward / up and the location display
    - Refresh, new folder, upload, rename, move, delete, download
    - Config button (opens ConnectionForm in a dialog)
    Second row: search box and sort controls.
    """

    def __init__(
        self,
        async_load: bool = True,
        manager_factory: Optional[ManagerFactory] = None,
    ) -> None:
        super().__init__()
        self.manager_factory: ManagerFactory = manager_factory or FileManager.from_settings
        self.settings = load_settings(CREDENTIALS_PATH)
        self.manager: Optional[FileManager] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        # --- Top bar UI ---
        self.top_bar = QHBoxLayout()

        self.scope_combo = QComboBox()
        for label, _kind in SCOPE_CHOICES:
            self.scope_combo.addItem(label)
        self.top_bar.addWidget(self.scope_combo)

        self.scope_id_input = QLineEdit()
        self.scope_id_input.setPlaceholderText("Library / user id")
        self.scope_id_input.setFixedWidth(140)
        self.top_bar.addWidget(self.scope_id_input)

        self.back_btn = self._icon_button(QStyle.StandardPixmap.SP_ArrowBack, "Back")
        self.forward_btn = self._icon_button(
            QStyle.StandardPixmap.SP_ArrowForward, "Forward"
        )
        self.up_btn = self._icon_button(QStyle.StandardPixmap.SP_ArrowUp, "Up")

        self.location_display = QLineEdit()
        self.location_display.setReadOnly(True)
        self.location_display.setPlaceholderText(
            "Location will appear here after connecting…"
        )
        self.top_bar.addWidget(self.location_display, 1)

        self.refresh_btn = self._icon_button(
            QStyle.StandardPixmap.SP_BrowserReload, "Refresh"
        )
        self.new_folder_btn = self._icon_button(
            QStyle.StandardPixmap.SP_FileDialogNewFolder, "New folder"
        )
        self.upload_btn = self._icon_button(
            QStyle.StandardPixmap.SP_ArrowUp, "Upload files"
        )
        self.rename_btn = self._icon_button(
            QStyle.StandardPixmap.SP_FileDialogDetailedView, "Rename"
        )
        self.move_btn = self._icon_button(
            QStyle.StandardPixmap.SP_FileDialogToParent, "Move"
        )
        self.delete_btn = self._icon_button(QStyle.StandardPixmap.SP_TrashIcon, "Delete")
        self.download_btn = self._icon_button(
            QStyle.StandardPixmap.SP_DialogSaveButton, "Download"
        )
        self.config_btn = self._icon_button(
            QStyle.StandardPixmap.SP_FileDialogInfoView, "Settings"
        )

        # --- Search / sort row ---
        self.search_bar = QHBoxLayout()
        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search this scope")
        self.search_input.setClearButtonEnabled(True)
        self.sort_combo = QComboBox()
        for label, _key in SORT_CHOICES:
            self.sort_combo.addItem(label)
        self.order_btn = QPushButton("Asc")
        self.order_btn.setCheckable(True)
        self.order_btn.setFixedWidth(48)
        self.search_bar.addWidget(self.search_input, 1)
        self.search_bar.addWidget(self.sort_combo)
        self.search_bar.addWidget(self.order_btn)

        # --- File explorer and uploads ---
        self.explorer = FileExplorer(async_load=async_load)
        self.upload_panel = UploadPanel(async_upload=async_load)

        layout = QVBoxLayout()
        layout.addLayout(self.top_bar)
        layout.addLayout(self.search_bar)
        layout.addWidget(self.explorer)
        layout.addWidget(self.upload_panel)
        self.setLayout(layout)

        self._wire()
        self._set_scope_widgets(self.settings.scope_kind, self.settings.scope_id)
        self._on_selection_changed("")
        self._on_nav_state_changed(False, False)
        self.refresh_from_saved()

    def _icon_button(self, pixmap: QStyle.StandardPixmap, tooltip: str) -> QPushButton:
        btn = QPushButton()
        btn.setIcon(self.style().standardIcon(pixmap))
        btn.setToolTip(tooltip)
        btn.setFixedSize(28, 28)
        self.top_bar.addWidget(btn)
        return btn

    def _wire(self) -> None:
        self.scope_combo.currentIndexChanged.connect(self.on_scope_changed)
        self.scope_id_input.returnPressed.connect(self.on_scope_changed)
        self.back_btn.clicked.connect(self.explorer.go_back)
        self.forward_btn.clicked.connect(self.explorer.go_forward)
        self.up_btn.clicked.connect(self.explorer.go_up)
        self.refresh_btn.clicked.connect(self.on_refresh_clicked)
        self.new_folder_btn.clicked.connect(self.on_new_folder_clicked)
        self.upload_btn.clicked.connect(self.on_upload_clicked)
        self.rename_btn.clicked.connect(self.on_rename_clicked)
        self.move_btn.clicked.connect(self.on_move_clicked)
        self.delete_btn.clicked.connect(self.on_delete_clicked)
        self.download_btn.clicked.connect(self.explorer.download_selected_file)
        self.config_btn.clicked.connect(self.open_config_dialog)
        self.search_input.textChanged.connect(self.explorer.show_search_results)
        self.sort_combo.currentIndexChanged.connect(self.on_sort_changed)
        self.order_btn.toggled.connect(self.on_sort_changed)

        self.explorer.selection_changed.connect(self._on_selection_changed)
        self.explorer.path_changed.connect(self._on_path_changed)
        self.explorer.nav_state_changed.connect(self._on_nav_state_changed)
        self.upload_panel.batch_finished.connect(self.on_upload_finished)
        self.upload_panel.batch_failed.connect(self.on_upload_failed)

    # ---- scope ----
    def _set_scope_widgets(self, kind: str, scope_id: str) -> None:
        index = 0
        for i, (_label, k) in enumerate(SCOPE_CHOICES):
            if k.value == kind:
                index = i
        self.scope_combo.blockSignals(True)
        try:
            self.scope_combo.setCurrentIndex(index)
        finally:
            self.scope_combo.blockSignals(False)
        self.scope_id_input.setText(scope_id)
        self.scope_id_input.setEnabled(SCOPE_CHOICES[index][1] != ScopeKind.PUBLIC_DOCUMENTS)

    def selected_scope(self) -> Optional[Scope]:
        kind = SCOPE_CHOICES[self.scope_combo.currentIndex()][1]
        ident = self.scope_id_input.text().strip()
        if kind == ScopeKind.PUBLIC_DOCUMENTS:
            return Scope(kind)
        if kind == ScopeKind.USER_FILES:
            ident = ident or self.settings.user_id
        if not ident:
            return None
        return Scope(kind, ident)

    def on_scope_changed(self, *_args) -> None:
        kind = SCOPE_CHOICES[self.scope_combo.currentIndex()][1]
        self.scope_id_input.setEnabled(kind != ScopeKind.PUBLIC_DOCUMENTS)
        self.settings.scope_kind = kind.value
        self.settings.scope_id = self.scope_id_input.text().strip()
        try:
            save_settings(self.settings, CREDENTIALS_PATH)
        except OSError:
            logger.warning("Could not persist scope selection", exc_info=True)
        self._open_selected_scope()

    def _open_selected_scope(self) -> None:
        if self.manager is None:
            self.explorer.status_label.setText("Not connected")
            return
        scope = self.selected_scope()
        if scope is None:
            self.explorer.status_label.setText("Enter a library or user id")
            return
        self.search_input.blockSignals(True)
        self.search_input.clear()
        self.search_input.blockSignals(False)
        self.explorer.open_scope(scope)

    # ---- connection ----
    def refresh_from_saved(self) -> None:
        """Build a manager from saved settings and open the selected scope."""
        if not self.settings.is_connectable():
            self._disconnect()
            return
        try:
            manager = self.manager_factory(self.settings)
        except (RuntimeError, ValueError) as e:
            logger.error(f"Cannot connect: {e}")
            self._disconnect()
            return
        self._set_manager(manager)
        self._open_selected_scope()

    def _set_manager(self, manager: Optional[FileManager]) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.manager = manager
        self.explorer.set_manager(manager)
        if manager is not None:
            self._unsubscribe = manager.notifier.subscribe(
                lambda event: logger.debug(
                    f"Sync event {event.type.value} for {event.item_kind.value} {event.item_id}"
                )
            )

    def _disconnect(self) -> None:
        self._set_manager(None)
        self.location_display.clear()
        self._on_selection_changed("")
        self._on_nav_state_changed(False, False)

    def open_config_dialog(self) -> None:
        # Wrap ConnectionForm inside a dialog
        dlg = QDialog(self)
        dlg.setWindowTitle("Connection Settings")
        v = QVBoxLayout(dlg)

        def on_connected(settings: Settings) -> None:
            try:
                self.settings = settings
                self.refresh_from_saved()
            finally:
                dlg.accept()

        form = ConnectionForm(callback=on_connected)
        v.addWidget(form)
        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        buttons.rejected.connect(dlg.reject)
        v.addWidget(buttons)

        dlg.setModal(True)
        dlg.resize(520, 300)
        dlg.exec()

    # ---- UI handlers ----
    def on_refresh_clicked(self) -> None:
        if self.manager is None or self.manager.scope is None:
            self._open_selected_scope()
            return
        self.explorer.load_files()

    def on_sort_changed(self, *_args) -> None:
        order = "desc" if self.order_btn.isChecked() else "asc"
        self.order_btn.setText(order.capitalize())
        self.explorer.set_sort(SORT_CHOICES[self.sort_combo.currentIndex()][1], order)

    def _mutate(self, title: str, fn: Callable[[FileManager], object]) -> bool:
        """Run one store change through the explorer's worker, then redisplay."""
        if self.manager is None:
            return False
        manager = self.manager
        return self.explorer.run_task(lambda: fn(manager), self._on_mutated, title)

    def _on_mutated(self, _result: object) -> None:
        if self.manager is None:
            return
        self.manager.revalidate()
        self.explorer.refresh_view()
        if self.manager.refresh_error:
            self.explorer.status_label.setText(
                f"Change saved, but refresh failed: {self.manager.refresh_error}"
            )

    def on_new_folder_clicked(self) -> None:
        if self.manager is None or self.manager.scope is None:
            return
        name, ok = QInputDialog.getText(self, "New folder", "Folder name:")
        if not ok:
            return
        self._mutate("New folder", lambda m: m.create_folder(name, revalidate=False))

    def on_rename_clicked(self) -> None:
        node = self.explorer.selected_node()
        if node is None:
            return
        name, ok = QInputDialog.getText(
            self, "Rename", "New name:", QLineEdit.EchoMode.Normal, node.name
        )
        if not ok or name.strip() == node.name:
            return
        self._mutate("Rename", lambda m: m.rename(node.id, name, revalidate=False))

    def move_targets(self, node_id: str) -> List[Tuple[str, Optional[str]]]:
        """(label, folder id) pairs a node may be moved into.

        A folder excludes its own subtree. Sibling folders sharing a name get
        their id appended so every label is distinct.
        """
        if self.manager is None:
            return []
        targets: List[Tuple[str, Optional[str]]] = [(ROOT_PATH, None)]
        for n in walk(self.manager.cache.tree.roots):
            if not isinstance(n, FolderNode):
                continue
            if n.id == node_id or node_id in self.manager.cache.ancestor_ids(n.id):
                continue
            targets.append((n.path, n.id))
        counts = Counter(path for path, _ in targets)
        return [
            (f"{path} ({fid})" if counts[path] > 1 else path, fid)
            for path, fid in targets
        ]

    def on_move_clicked(self) -> None:
        node = self.explorer.selected_node()
        if node is None or self.manager is None:
            return
        targets = dict(self.move_targets(node.id))
        choice, ok = QInputDialog.getItem(
            self, "Move", f"Move {node.name} to:", list(targets), 0, False
        )
        if not ok or choice not in targets:
            return
        target_id = targets[choice]
        self._mutate("Move", lambda m: m.move(node.id, target_id, revalidate=False))

    def on_delete_clicked(self) -> None:
        node = self.explorer.selected_node()
        if node is None:
            return
        what = "folder and everything in it" if isinstance(node, FolderNode) else "file"
        answer = QMessageBox.question(
            self, "Delete", f"Delete {node.name!r}? This removes the {what}."
        )
        if answer != QMessageBox.StandardButton.Yes:
            return
        self._mutate("Delete", lambda m: m.remove(node.id, revalidate=False))

    def on_upload_clicked(self) -> None:
        if self.manager is None or self.manager.scope is None:
            return
        paths, _ = QFileDialog.getOpenFileNames(self, "Upload files")
        if not paths:
            return
        try:
            files = [PendingFile.from_path(p) for p in paths]
        except OSError as e:
            QMessageBox.critical(self, "Upload", str(e))
            return
        self.upload_files(files)

    def upload_files(self, files: List[PendingFile]) -> bool:
        if self.manager is None:
            return False
        self.upload_btn.setEnabled(False)
        started = self.upload_panel.start(self.manager, files)
        if not started:
            self.upload_btn.setEnabled(True)
        return started

    def on_upload_finished(self, batch: UploadBatch) -> None:
        self.upload_btn.setEnabled(True)
        self.explorer.refresh_view()
        if batch.failed:
            QMessageBox.warning(self, "Upload", str(PartialUploadFailure(batch.outcomes)))

    def on_upload_failed(self, message: str) -> None:
        self.upload_btn.setEnabled(True)
        QMessageBox.critical(self, "Upload", message)

    # ---- explorer signals ----
    def _on_selection_changed(self, node_id: str) -> None:
        node = self.explorer.selected_node() if node_id else None
        has = node is not None
        self.rename_btn.setEnabled(has)
        self.move_btn.setEnabled(has)
        self.delete_btn.setEnabled(has)
        self.download_btn.setEnabled(isinstance(node, FileNode))

    def _on_path_changed(self, path: str) -> None:
        self.location_display.setText(path or ROOT_PATH)
        self.up_btn.setEnabled(path not in ("", ROOT_PATH))
        self._on_selection_changed("")

    def _on_nav_state_changed(self, can_back: bool, can_forward: bool) -> None:
        self.back_btn.setEnabled(can_back)
        self.forward_btn.setEnabled(can_forward)
