import pytest

from docvault.config import Settings
from docvault.errors import NetworkFailure, NotFoundError, ValidationError
from docvault.models import Scope, ScopeKind
from docvault.services.file_manager import FileManager
from docvault.services.hierarchy.client import HierarchyClient
from docvault.services.uploads import PendingFile, UploadStatus


@pytest.fixture
def manager(backend, scope):
    m = FileManager(backend, chunk_size=1024)
    m.open_scope(scope)
    return m


def test_open_scope_resets_navigation(manager, backend):
    manager.enter_folder("/Docs/Reports")
    manager.open_scope(Scope(ScopeKind.PUBLIC_DOCUMENTS))

    assert manager.navigation.state.at_root
    assert manager.scope.kind == ScopeKind.PUBLIC_DOCUMENTS


def test_failed_open_scope_keeps_previous_state(manager, backend, scope):
    manager.enter_folder("/Docs")
    backend.fail["list_scope"] = NetworkFailure("Timed out while trying to load files.")

    with pytest.raises(NetworkFailure):
        manager.open_scope(Scope(ScopeKind.USER_FILES, "u1"))

    assert manager.scope == scope
    assert manager.navigation.state.current_path == "/Docs"
    assert [n.name for n in manager.current_view()] == ["Reports", "readme.txt"]


def test_create_folder_targets_current_folder(manager):
    manager.enter_folder("/Docs")
    record = manager.create_folder("Minutes")

    assert record.parent_id == "docs"
    assert "Minutes" in [n.name for n in manager.current_view("name")]


def test_rename_current_folder_keeps_position(manager):
    manager.enter_folder("/Docs/Reports")
    manager.rename("docs", "Papers")

    assert manager.navigation.state.current_path == "/Papers/Reports"
    assert [c.label for c in manager.breadcrumb_trail()] == ["Papers", "Reports"]


def test_remove_current_folder_moves_up(manager):
    manager.enter_folder("/Docs/Reports")
    manager.remove("reports")

    assert manager.navigation.state.current_path == "/Docs"


def test_partial_upload_rebuilds_once(manager, backend):
    backend.fail_upload_names.add("bad.txt")
    manager.enter_folder("/Images")
    before = len([c for c in backend.calls if c[0] == "list_scope"])

    batch = manager.upload(
        [PendingFile.from_bytes("ok.png", b"png"), PendingFile.from_bytes("bad.txt", b"t")]
    )

    after = len([c for c in backend.calls if c[0] == "list_scope"])
    assert after == before + 1
    assert [o.status for o in batch.outcomes] == [UploadStatus.SUCCESS, UploadStatus.ERROR]
    assert [n.name for n in manager.current_view()] == ["ok.png"]
    assert batch.refresh_error is None


def test_all_failed_upload_skips_rebuild(manager, backend):
    backend.fail_upload_names.add("bad.txt")
    before = len(backend.calls)

    batch = manager.upload([PendingFile.from_bytes("bad.txt", b"t")])

    assert not batch.any_succeeded
    assert not any(c[0] == "list_scope" for c in backend.calls[before:])


def test_upload_reports_failed_refresh(manager, backend):
    original = backend.list_scope

    def flaky(scope):
        raise NetworkFailure("Server returned 502 while trying to load files.", 502)

    backend.list_scope = flaky
    batch = manager.upload([PendingFile.from_bytes("a.txt", b"a")])
    backend.list_scope = original

    assert batch.all_succeeded
    assert "502" in batch.refresh_error


def test_search_spans_whole_scope(manager):
    manager.enter_folder("/Images")
    assert [n.path for n in manager.search("q1")] == ["/Docs/Reports/Q1.pdf"]


def test_download_file(manager, tmp_path):
    target = tmp_path / "out" / "Q1.pdf"
    target.parent.mkdir()
    manager.download("q1", str(target))
    assert target.read_bytes().startswith(b"content of ")


def test_download_folder_is_rejected(manager, tmp_path):
    with pytest.raises(ValidationError):
        manager.download("docs", str(tmp_path / "x"))


def test_refresh_without_scope():
    m = FileManager(backend=None)
    with pytest.raises(NotFoundError):
        m.refresh()


def test_from_settings_builds_client():
    settings = Settings(base_url="https://api.example.com", token="t", chunk_size=2048)
    m = FileManager.from_settings(settings)
    assert isinstance(m.backend, HierarchyClient)
    assert m.uploads.chunk_size == 2048


def test_deferred_revalidation_leaves_navigation_to_caller(manager):
    manager.enter_folder("/Docs/Reports")

    manager.remove("reports", revalidate=False)
    assert manager.navigation.state.current_folder_id == "reports"

    manager.revalidate()
    assert manager.navigation.state.current_path == "/Docs"


def test_upload_without_revalidation_still_rebuilds(manager):
    manager.enter_folder("/Images")

    manager.upload([PendingFile.from_bytes("a.png", b"a")], revalidate=False)

    assert "a.png" in [n.name for n in manager.current_view()]


def test_open_scope_without_reset_keeps_history(manager, scope):
    manager.enter_folder("/Docs")

    manager.open_scope(scope, reset=False)
    assert manager.navigation.can_go_back()

    manager.navigation.reset()
    assert manager.navigation.state.at_root


def test_mutation_reports_failed_refresh(manager, backend):
    backend.fail["list_scope"] = NetworkFailure("Timed out while trying to load files.")

    manager.rename("notes", "todo.md")

    assert backend.files["notes"].name == "todo.md"
    assert "Timed out" in manager.refresh_error
