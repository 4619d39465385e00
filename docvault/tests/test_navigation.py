from datetime import datetime

from conftest import FakeHierarchyBackend
from docvault.models import FileNode, FolderNode
from docvault.services.navigation import (
    Breadcrumb,
    NavigationController,
    sort_nodes,
)
from docvault.services.tree_cache import TreeCache


def _nav(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)
    return cache, NavigationController(cache)


def test_enter_folder_updates_state_and_view(backend, scope):
    _cache, nav = _nav(backend, scope)

    assert nav.state.at_root
    assert nav.enter_folder("/Docs/Reports")
    assert nav.state.current_path == "/Docs/Reports"
    assert nav.state.current_folder_id == "reports"
    assert [n.name for n in nav.current_view()] == ["Q1.pdf"]


def test_enter_stale_or_file_path_keeps_state(backend, scope, caplog):
    _cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs")

    assert not nav.enter_folder("/Docs/Archive")
    assert not nav.enter_folder("/Docs/readme.txt")
    assert nav.state.current_path == "/Docs"
    assert nav.state.current_folder_id == "docs"
    assert "no longer exists" in caplog.text


def test_breadcrumb_trail_and_segment_navigation(backend, scope):
    _cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs/Reports")

    assert nav.breadcrumb_trail() == [
        Breadcrumb("Docs", "/Docs"),
        Breadcrumb("Reports", "/Docs/Reports"),
    ]
    assert nav.navigate_to_breadcrumb_segment("/Docs")
    assert nav.state.current_folder_id == "docs"
    assert nav.navigate_to_breadcrumb_segment("")
    assert nav.state.at_root
    assert nav.breadcrumb_trail() == []


def test_history_back_forward_and_up(backend, scope):
    _cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs")
    nav.enter_folder("/Docs/Reports")

    assert nav.can_go_back() and not nav.can_go_forward()
    assert nav.go_back()
    assert nav.state.current_path == "/Docs"
    assert nav.go_back()
    assert nav.state.at_root
    assert not nav.go_back()
    assert nav.go_forward()
    assert nav.state.current_path == "/Docs"

    # A new visit truncates forward history
    nav.enter_folder("/Images")
    assert not nav.can_go_forward()

    assert nav.go_up()
    assert nav.state.at_root
    assert not nav.go_up()


def test_revalidate_follows_renamed_folder(backend, scope):
    cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs/Reports")

    backend.rename_folder("docs", "Documents")
    cache.rebuild(scope)
    nav.revalidate()

    assert nav.state.current_folder_id == "reports"
    assert nav.state.current_path == "/Documents/Reports"


def test_revalidate_falls_back_to_nearest_surviving_ancestor(backend, scope):
    cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs/Reports")

    backend.delete_folder("reports")
    cache.rebuild(scope)
    # Before revalidation the view reports nothing rather than stale nodes
    assert nav.current_view() == []
    nav.revalidate()

    assert nav.state.current_path == "/Docs"
    assert nav.state.current_folder_id == "docs"


def test_revalidate_falls_back_to_root(backend, scope):
    cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs/Reports")

    backend.delete_folder("docs")
    cache.rebuild(scope)
    nav.revalidate()

    assert nav.state.at_root
    assert nav.state.current_path == "/"


def test_current_view_is_read_fresh_after_rebuild(backend, scope):
    cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs")
    backend.add_file("extra", "extra.txt", "docs")
    cache.rebuild(scope)

    assert "extra.txt" in [n.name for n in nav.current_view()]


def test_reset_returns_to_root_and_clears_history(backend, scope):
    _cache, nav = _nav(backend, scope)
    nav.enter_folder("/Docs")
    nav.reset()

    assert nav.state.at_root
    assert not nav.can_go_back()


def test_sort_nodes_keeps_folders_first():
    nodes = [
        FileNode(id="1", name="b.txt", size=5, mime_type="text/plain",
                 updated_at=datetime(2024, 1, 2)),
        FolderNode(id="2", name="Zeta", created_at=datetime(2023, 1, 1)),
        FileNode(id="3", name="A.pdf", size=50, mime_type="application/pdf",
                 updated_at=datetime(2024, 1, 1)),
        FolderNode(id="4", name="alpha", created_at=datetime(2024, 6, 1)),
    ]

    assert [n.id for n in sort_nodes(nodes, "name")] == ["4", "2", "3", "1"]
    assert [n.id for n in sort_nodes(nodes, "name", "desc")] == ["2", "4", "1", "3"]
    assert [n.id for n in sort_nodes(nodes, "size", "desc")] == ["2", "4", "3", "1"]
    assert [n.id for n in sort_nodes(nodes, "date")] == ["2", "4", "3", "1"]
    assert [n.id for n in sort_nodes(nodes, "type")] == ["2", "4", "3", "1"]
    # Unknown keys fall back to name
    assert [n.id for n in sort_nodes(nodes, "bogus")] == ["4", "2", "3", "1"]


def test_docs_reports_scenario(scope):
    b = FakeHierarchyBackend()
    b.add_folder("A", "Docs")
    b.add_folder("B", "Reports", "A")
    b.add_file("F1", "Q1.pdf", "B")
    cache, nav = _nav(b, scope)

    assert cache.find_by_path("/Docs/Reports").id == "B"
    assert nav.enter_folder("/Docs/Reports")
    assert [n.id for n in nav.current_view()] == ["F1"]


def test_view_matches_parent_ids_for_every_folder(backend, scope):
    cache, nav = _nav(backend, scope)
    records = list(backend.folders.values()) + list(backend.files.values())

    for folder in [n for n in cache.tree.by_id.values() if isinstance(n, FolderNode)]:
        assert nav.enter_folder(folder.path)
        expected = {
            r.id
            for r in records
            if getattr(r, "parent_id", getattr(r, "folder_id", None)) == folder.id
        }
        assert {n.id for n in nav.current_view()} == expected
