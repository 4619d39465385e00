from docvault.components.upload_panel import UploadPanel
from docvault.services.file_manager import FileManager
from docvault.services.uploads import PendingFile, UploadStatus


def _manager(backend, scope):
    m = FileManager(backend, chunk_size=1024)
    m.open_scope(scope)
    return m


def test_rows_track_progress_and_status(qtbot, backend, scope):
    panel = UploadPanel(async_upload=False)
    qtbot.addWidget(panel)
    backend.fail_upload_names.add("bad.txt")
    finished = []
    panel.batch_finished.connect(finished.append)

    assert panel.start(
        _manager(backend, scope),
        [
            PendingFile.from_bytes("big.bin", b"x" * 3000),
            PendingFile.from_bytes("bad.txt", b"y"),
        ],
    )

    assert panel.bars[0].value() == 100
    assert panel.status_labels[0].text() == UploadStatus.SUCCESS.value
    assert panel.status_labels[1].text() == UploadStatus.ERROR.value
    assert "500" in panel.status_labels[1].toolTip()
    assert not panel.cancel_buttons[0].isEnabled()
    assert panel.summary_label.text() == "1 of 2 uploaded"
    assert len(finished) == 1 and not finished[0].all_succeeded


def test_cancel_sets_token(qtbot):
    panel = UploadPanel(async_upload=False)
    qtbot.addWidget(panel)
    pending = PendingFile.from_bytes("a.txt", b"a")
    panel.files = [pending]
    panel._add_row(0, pending)

    panel.cancel_buttons[0].click()

    assert pending.cancel_token.cancelled
    assert not panel.cancel_buttons[0].isEnabled()


def test_start_with_no_files_is_noop(qtbot, backend, scope):
    panel = UploadPanel(async_upload=False)
    qtbot.addWidget(panel)
    assert not panel.start(_manager(backend, scope), [])
    assert not panel.isVisible()


def test_async_upload_finishes(qtbot, backend, scope):
    panel = UploadPanel(async_upload=True)
    qtbot.addWidget(panel)

    with qtbot.waitSignal(panel.batch_finished, timeout=5000) as blocker:
        panel.start(_manager(backend, scope), [PendingFile.from_bytes("a.txt", b"abc")])

    assert blocker.args[0].all_succeeded
    assert panel.bars[0].value() == 100


def test_unexpected_error_reports_and_frees_panel(qtbot, backend, scope):
    panel = UploadPanel(async_upload=True)
    qtbot.addWidget(panel)
    manager = _manager(backend, scope)

    def broken_upload(*args, **kwargs):
        raise RuntimeError("disk vanished")

    manager.upload = broken_upload

    with qtbot.waitSignal(panel.batch_failed, timeout=5000) as blocker:
        panel.start(manager, [PendingFile.from_bytes("a.txt", b"a")])

    assert blocker.args[0] == "disk vanished"
    assert panel.summary_label.text() == "Upload failed: disk vanished"
    qtbot.waitUntil(lambda: not panel.is_busy(), timeout=5000)


def test_finished_batch_revalidates_navigation(qtbot, backend, scope):
    panel = UploadPanel(async_upload=False)
    qtbot.addWidget(panel)
    manager = _manager(backend, scope)
    manager.enter_folder("/Docs/Reports")
    backend.delete_folder("reports")

    panel.start(manager, [PendingFile.from_bytes("a.txt", b"a")])

    assert manager.navigation.state.current_path == "/Docs"
