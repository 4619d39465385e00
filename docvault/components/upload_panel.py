from typing import Dict, List, Optional, Sequence

from PySide6.QtCore import QObject, QThread, Signal
from PySide6.QtWidgets import (
    QGridLayout,
    QLabel,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from docvault.services.file_manager import FileManager
from docvault.services.uploads import (
    FileOutcome,
    PendingFile,
    UploadBatch,
    UploadStatus,
)


class _UploadWorker(QObject):
    progress = Signal(int, float)
    status = Signal(object)
    finished = Signal(object)
    error = Signal(str)

    def __init__(self, manager: FileManager, files: Sequence[PendingFile]):
        super().__init__()
        self._manager = manager
        self._files = list(files)

    def run(self):
        # Navigation is revalidated by the receiver on the UI thread
        try:
            batch = self._manager.upload(
                self._files,
                on_progress=self.progress.emit,
                on_status=self.status.emit,
                revalidate=False,
            )
        except Exception as e:
            self.error.emit(str(e) or type(e).__name__)
            return
        self.finished.emit(batch)


class UploadPanel(QWidget):
    """One row per queued file: name, progress bar, status and a cancel button."""

    # Emitted with the UploadBatch once every file has a final status
    batch_finished = Signal(object)
    batch_failed = Signal(str)

    def __init__(self, async_upload: bool = True) -> None:
        super().__init__()
        self.async_upload = async_upload
        self.files: List[PendingFile] = []
        self.manager: Optional[FileManager] = None
        self.bars: Dict[int, QProgressBar] = {}
        self.status_labels: Dict[int, QLabel] = {}
        self.cancel_buttons: Dict[int, QPushButton] = {}
        self._thread: Optional[QThread] = None
        self._worker: Optional[_UploadWorker] = None

        outer = QVBoxLayout()
        outer.setContentsMargins(0, 4, 0, 4)
        self.summary_label = QLabel("")
        self.grid = QGridLayout()
        outer.addLayout(self.grid)
        outer.addWidget(self.summary_label)
        self.setLayout(outer)
        self.setVisible(False)

    def is_busy(self) -> bool:
        return self._thread is not None

    def _reset_rows(self) -> None:
        while self.grid.count():
            item = self.grid.takeAt(0)
            w = item.widget()
            if w is not None:
                w.deleteLater()
        self.bars.clear()
        self.status_labels.clear()
        self.cancel_buttons.clear()

    def _add_row(self, index: int, pending: PendingFile) -> None:
        bar = QProgressBar()
        bar.setRange(0, 100)
        bar.setValue(0)
        status = QLabel(UploadStatus.PENDING.value)
        cancel = QPushButton("Cancel")
        cancel.clicked.connect(lambda _checked=False, i=index: self.cancel(i))
        self.grid.addWidget(QLabel(pending.name), index, 0)
        self.grid.addWidget(bar, index, 1)
        self.grid.addWidget(status, index, 2)
        self.grid.addWidget(cancel, index, 3)
        self.bars[index] = bar
        self.status_labels[index] = status
        self.cancel_buttons[index] = cancel

    def start(self, manager: FileManager, files: Sequence[PendingFile]) -> bool:
        if self.is_busy() or not files:
            return False
        self.manager = manager
        self.files = list(files)
        self._reset_rows()
        for i, pending in enumerate(self.files):
            self._add_row(i, pending)
        self.summary_label.setText(f"Uploading {len(self.files)} file(s)…")
        self.setVisible(True)

        if not self.async_upload:
            try:
                batch = manager.upload(
                    self.files,
                    on_progress=self.on_progress,
                    on_status=self.on_status,
                    revalidate=False,
                )
            except Exception as e:
                self.on_error(str(e) or type(e).__name__)
                return True
            self.on_finished(batch)
            return True

        self._thread = QThread(self)
        self._worker = _UploadWorker(manager, self.files)
        self._worker.moveToThread(self._thread)
        self._thread.started.connect(self._worker.run)
        self._worker.progress.connect(self.on_progress)
        self._worker.status.connect(self.on_status)
        self._worker.finished.connect(self.on_finished)
        self._worker.error.connect(self.on_error)
        self._worker.finished.connect(self._thread.quit)
        self._worker.error.connect(self._thread.quit)
        self._thread.finished.connect(self._cleanup)
        self._thread.start()
        return True

    def _cleanup(self) -> None:
        if self._worker is not None:
            self._worker.deleteLater()
        if self._thread is not None:
            self._thread.deleteLater()
        self._worker = None
        self._thread = None

    def cancel(self, index: int) -> None:
        if 0 <= index < len(self.files):
            self.files[index].cancel_token.cancel()
            btn = self.cancel_buttons.get(index)
            if btn is not None:
                btn.setEnabled(False)

    def cancel_all(self) -> None:
        for i in range(len(self.files)):
            self.cancel(i)

    # ---- worker slots ----
    def on_progress(self, index: int, percent: float) -> None:
        bar = self.bars.get(index)
        if bar is not None:
            bar.setValue(int(round(percent)))

    def on_status(self, outcome: FileOutcome) -> None:
        label = self.status_labels.get(outcome.index)
        if label is None:
            return
        text = outcome.status.value
        if outcome.error:
            label.setToolTip(outcome.error)
        label.setText(text)
        if outcome.status in (
            UploadStatus.SUCCESS,
            UploadStatus.ERROR,
            UploadStatus.CANCELLED,
        ):
            btn = self.cancel_buttons.get(outcome.index)
            if btn is not None:
                btn.setEnabled(False)

    def on_finished(self, batch: UploadBatch) -> None:
        if self.manager is not None and batch.any_succeeded:
            self.manager.revalidate()
        done = len(batch.outcomes) - len(batch.failed)
        text = f"{done} of {len(batch.outcomes)} uploaded"
        if batch.refresh_error:
            text += f" (refresh failed: {batch.refresh_error})"
        self.summary_label.setText(text)
        self.batch_finished.emit(batch)

    def on_error(self, message: str) -> None:
        self.summary_label.setText(f"Upload failed: {message}")
        self.batch_failed.emit(message)
