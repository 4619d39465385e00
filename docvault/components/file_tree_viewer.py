from datetime import datetime
from typing import Any, Callable, List, Optional

from PySide6.QtCore import QFileInfo, QObject, Qt, QThread, Signal
from PySide6.QtWidgets import (
    QFileDialog,
    QFileIconProvider,
    QHeaderView,
    QLabel,
    QMessageBox,
    QProgressBar,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from docvault.components.breadcrumb_bar import BreadcrumbBar
from docvault.errors import NotFoundError
from docvault.models import FileNode, FolderNode, Node, Scope
from docvault.services.file_manager import FileManager


def format_size(size: Any) -> str:
    try:
        sz = int(size)
    except (TypeError, ValueError):
        return str(size)
    if sz >= 1024 * 1024 * 1024:
        return f"{sz / (1024 * 1024 * 1024):.1f} GB"
    if sz >= 1024 * 1024:
        return f"{sz / (1024 * 1024):.1f} MB"
    if sz >= 1024:
        return f"{sz / 1024:.1f} KB"
    return f"{sz} B"


def format_modified(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, datetime):
        dt = val
        # Normalize to local time for display
        if dt.tzinfo is not None:
            dt = dt.astimezone().replace(tzinfo=None)
        return dt.strftime("%Y-%m-%d %H:%M")
    if isinstance(val, (int, float)):
        ts = float(val)
        # Heuristic: if ts is likely in ms, convert to seconds
        if ts > 10_000_000_000:
            ts = ts / 1000.0
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
    s = str(val).strip()
    if s.isdigit():
        return format_modified(int(s))
    try:
        return format_modified(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        return s


class _LoaderWorker(QObject):
    finished = Signal(object)
    error = Signal(str)

    def __init__(self, fetch_fn: Callable[[], Any]):
        super().__init__()
        self._fetch_fn = fetch_fn

    def run(self):
        try:
            self.finished.emit(self._fetch_fn())
        except Exception as e:
            self.error.emit(str(e) or type(e).__name__)


class FileExplorer(QWidget):
    """Current-folder listing for one scope with breadcrumbs and status."""

    # Emitted whenever the selected node changes; carries the node id or ''
    selection_changed = Signal(str)
    # Emitted whenever the current folder path changes, e.g. '/Docs/Reports'
    path_changed = Signal(str)
    # Emitted when back/forward availability changes
    nav_state_changed = Signal(bool, bool)
    # Emitted after the view was repopulated from a fresh tree
    tree_reloaded = Signal()

    def __init__(
        self, manager: Optional[FileManager] = None, async_load: bool = False
    ) -> None:
        super().__init__()
        self.manager = manager
        self.async_load = async_load
        self.selected_id: Optional[str] = None
        self.sort_by = "name"
        self.sort_order = "asc"
        self.search_query = ""
        self._loading = False
        self._loader_thread: Optional[QThread] = None
        self._loader_worker: Optional[_LoaderWorker] = None
        self._on_done: Optional[Callable[[Any], None]] = None
        self._error_title = "Error"
        self._icon_provider = QFileIconProvider()
        self.init_ui()

    def init_ui(self) -> None:
        self.main_layout = QVBoxLayout()
        self.main_layout.setContentsMargins(0, 0, 0, 0)
        self.main_layout.setSpacing(0)

        self.breadcrumbs = BreadcrumbBar()
        self.breadcrumbs.segment_clicked.connect(self.on_breadcrumb_clicked)

        self.status_label = QLabel("Not connected")

        # Indeterminate progress bar for loading state
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 0)
        self.progress_bar.setTextVisible(False)
        self.progress_bar.setFixedHeight(4)
        self.progress_bar.setVisible(False)

        self.file_tree = QTreeWidget()
        self.file_tree.setHeaderLabels(["Name", "Size", "Type", "Date modified"])
        self.file_tree.setRootIsDecorated(False)
        self.file_tree.setUniformRowHeights(True)
        self.file_tree.setStyleSheet(
            "QTreeWidget { margin: 0; padding: 0; } QTreeWidget::item { padding: 4.5px; }"
        )
        header = self.file_tree.header()
        header.setStretchLastSection(False)
        header.setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(0, QHeaderView.ResizeMode.Stretch)

        self.file_tree.itemClicked.connect(self.on_item_selected)
        self.file_tree.itemDoubleClicked.connect(self.on_item_double_clicked)

        self.main_layout.addWidget(self.breadcrumbs)
        self.main_layout.addWidget(self.file_tree)
        self.main_layout.addWidget(self.progress_bar)
        self.main_layout.addWidget(self.status_label)
        self.setLayout(self.main_layout)

    # ---- background work ----
    def _show_loading(self, on: bool) -> None:
        self._loading = on
        if on:
            self.status_label.setText("Loading…")
        self.progress_bar.setVisible(on)

    def _cleanup_loader(self) -> None:
        if self._loader_worker is not None:
            self._loader_worker.deleteLater()
        if self._loader_thread is not None:
            self._loader_thread.deleteLater()
        self._loader_worker = None
        self._loader_thread = None
        self._loading = False

    def run_task(
        self,
        fn: Callable[[], Any],
        on_done: Callable[[Any], None],
        error_title: str = "Error",
    ) -> bool:
        """Run a store call off the UI thread (or inline when async_load is off).

        Returns False when the call could not start or failed synchronously.
        """
        if self._loading or self._loader_thread is not None:
            return False
        self._on_done = on_done
        self._error_title = error_title

        self._show_loading(True)
        if not self.async_load:
            try:
                result = fn()
            except Exception as e:
                self._on_task_error(str(e) or type(e).__name__)
                return False
            self._on_task_finished(result)
            return True

        self._loader_thread = QThread(self)
        self._loader_worker = _LoaderWorker(fn)
        self._loader_worker.moveToThread(self._loader_thread)
        # Slots run in the main thread because the receivers live there
        self._loader_thread.started.connect(self._loader_worker.run)
        self._loader_worker.finished.connect(self._on_task_finished)
        self._loader_worker.error.connect(self._on_task_error)
        self._loader_worker.finished.connect(self._loader_thread.quit)
        self._loader_worker.error.connect(self._loader_thread.quit)
        self._loader_thread.finished.connect(self._cleanup_loader)
        self._loader_thread.start()
        return True

    def _on_task_finished(self, result: Any) -> None:
        on_done, self._on_done = self._on_done, None
        try:
            if on_done is not None:
                on_done(result)
        finally:
            self._show_loading(False)

    def _on_task_error(self, message: str) -> None:
        self._on_done = None
        try:
            self._handle_error(self._error_title, message)
        finally:
            self._show_loading(False)

    def _handle_error(self, title: str, message: str) -> None:
        msg = message
        if any(x in msg for x in ["401", "403", "Authentication", "forbidden"]):
            msg += "\n\nTip: Double-check your access token and server URL."
        QMessageBox.critical(self, title, msg)
        # Prior tree and view stay as they were
        self.status_label.setText(f"{title}: {message.splitlines()[0]}")

    # ---- loading ----
    def set_manager(self, manager: Optional[FileManager]) -> None:
        self.manager = manager
        self.selected_id = None
        self.search_query = ""
        self.file_tree.clear()
        self.breadcrumbs.set_trail([])
        self.status_label.setText("Not connected" if manager is None else "")

    def open_scope(self, scope: Scope) -> bool:
        if self.manager is None:
            self.status_label.setText("Not connected")
            return False
        manager = self.manager
        return self.run_task(
            lambda: manager.open_scope(scope, reset=False),
            self._on_scope_opened,
            "Failed to load files",
        )

    def load_files(self) -> bool:
        """Rebuild the whole tree for the open scope and redisplay."""
        if self.manager is None or self.manager.scope is None:
            self.status_label.setText("Not connected")
            return False
        manager = self.manager
        return self.run_task(
            manager.rebuild, self._on_tree_rebuilt, "Failed to load files"
        )

    def _on_scope_opened(self, _tree: Any) -> None:
        if self.manager is not None:
            self.manager.navigation.reset()
        self.refresh_view()

    def _on_tree_rebuilt(self, _tree: Any) -> None:
        if self.manager is not None:
            self.manager.revalidate()
        self.refresh_view()

    # ---- view ----
    def refresh_view(self) -> None:
        if self.manager is None:
            return
        self.search_query = ""
        nodes = self.manager.current_view(self.sort_by, self.sort_order)
        self._populate(nodes)
        self.breadcrumbs.set_trail(self.manager.breadcrumb_trail())
        nav = self.manager.navigation
        self.path_changed.emit(nav.state.current_path)
        self.nav_state_changed.emit(nav.can_go_back(), nav.can_go_forward())
        self.tree_reloaded.emit()

    def show_search_results(self, query: str) -> None:
        if self.manager is None:
            return
        query = (query or "").strip()
        if not query:
            self.refresh_view()
            return
        self.search_query = query
        self._populate(self.manager.search(query), show_paths=True)

    def set_sort(self, sort_by: str, order: str = "asc") -> None:
        self.sort_by = sort_by
        self.sort_order = order
        if self.search_query:
            self.show_search_results(self.search_query)
        else:
            self.refresh_view()

    def _populate(self, nodes: List[Node], show_paths: bool = False) -> None:
        self.file_tree.setUpdatesEnabled(False)
        self.file_tree.clear()
        self.selected_id = None
        items_buf: List[QTreeWidgetItem] = []
        for node in nodes:
            label = node.path if show_paths else node.name
            if isinstance(node, FolderNode):
                row = [label, "", "Folder", format_modified(node.created_at)]
                icon = self._icon_provider.icon(QFileIconProvider.IconType.Folder)
            else:
                row = [
                    label,
                    format_size(node.size),
                    node.mime_type,
                    format_modified(node.updated_at),
                ]
                icon = self._icon_provider.icon(QFileInfo(node.name))
                if icon.isNull():
                    icon = self._icon_provider.icon(QFileIconProvider.IconType.File)
            item = QTreeWidgetItem(row)
            item.setIcon(0, icon)
            item.setData(0, Qt.ItemDataRole.UserRole, node.id)
            items_buf.append(item)
        if items_buf:
            self.file_tree.addTopLevelItems(items_buf)
        self.file_tree.setUpdatesEnabled(True)
        self._update_status()

    def _update_status(self) -> None:
        count = self.file_tree.topLevelItemCount()
        if count == 0:
            self.status_label.setText(
                "No matches" if self.search_query else "No files to display"
            )
            return
        text = f"{count} item{'' if count == 1 else 's'}"
        if self.search_query:
            text += f" matching {self.search_query!r}"
        node = self.selected_node()
        if node is not None:
            size = "Folder" if isinstance(node, FolderNode) else format_size(node.size)
            text += f" | 1 item selected | {size}"
        self.status_label.setText(text)

    def node_ids(self) -> List[str]:
        out = []
        for i in range(self.file_tree.topLevelItemCount()):
            item = self.file_tree.topLevelItem(i)
            out.append(str(item.data(0, Qt.ItemDataRole.UserRole)))
        return out

    def selected_node(self) -> Optional[Node]:
        if self.manager is None or not self.selected_id:
            return None
        return self.manager.cache.tree.by_id.get(self.selected_id)

    # ---- events ----
    def on_item_selected(self, item, _column=None) -> None:
        self.selected_id = item.data(0, Qt.ItemDataRole.UserRole) or None
        self.selection_changed.emit(self.selected_id or "")
        self._update_status()

    def on_item_double_clicked(self, item, _column=None) -> None:
        if self.manager is None:
            return
        node_id = item.data(0, Qt.ItemDataRole.UserRole)
        try:
            node = self.manager.cache.find_by_id(str(node_id))
        except NotFoundError:
            self.status_label.setText("That item no longer exists; refresh to update")
            return
        if isinstance(node, FolderNode):
            self.enter_folder(node.path)

    def enter_folder(self, path: str) -> bool:
        if self.manager is None:
            return False
        if not self.manager.enter_folder(path):
            self.status_label.setText(f"Folder not found: {path}")
            return False
        self.refresh_view()
        return True

    def on_breadcrumb_clicked(self, path: str) -> None:
        if self.manager is None:
            return
        if self.manager.navigation.navigate_to_breadcrumb_segment(path):
            self.refresh_view()
        else:
            self.status_label.setText(f"Folder not found: {path}")

    # Public navigation API for Explorer
    def can_go_back(self) -> bool:
        return self.manager is not None and self.manager.navigation.can_go_back()

    def can_go_forward(self) -> bool:
        return self.manager is not None and self.manager.navigation.can_go_forward()

    def go_back(self) -> None:
        if self.manager is not None and self.manager.navigation.go_back():
            self.refresh_view()

    def go_forward(self) -> None:
        if self.manager is not None and self.manager.navigation.go_forward():
            self.refresh_view()

    def go_up(self) -> None:
        if self.manager is not None and self.manager.navigation.go_up():
            self.refresh_view()

    def download_selected_file(self) -> None:
        node = self.selected_node()
        if self.manager is None or not isinstance(node, FileNode):
            return
        local_path, _ = QFileDialog.getSaveFileName(self, "Save File As", node.name)
        if not local_path:
            return
        manager, node_id = self.manager, node.id
        self.run_task(
            lambda: manager.download(node_id, local_path),
            self._on_downloaded,
            "Download",
        )

    def _on_downloaded(self, _result: Any) -> None:
        self._update_status()
        QMessageBox.information(self, "Success", "File downloaded successfully.")
