import pytest

from docvault.errors import NotFoundError, NetworkFailure
from docvault.services.tree_builder import walk
from docvault.services.tree_cache import TreeCache, split_path


def test_split_path_ignores_empty_segments():
    assert split_path("/Docs//Reports/") == ["Docs", "Reports"]
    assert split_path("\\Docs\\Reports") == ["Docs", "Reports"]
    assert split_path("") == []
    assert split_path("/") == []


def test_find_by_path_round_trips_every_node(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)

    for node in walk(cache.tree.roots):
        assert cache.find_by_path(node.path) is node


def test_find_by_path_root_and_miss(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)

    assert cache.find_by_path("/") is None
    assert cache.find_by_path("") is None
    with pytest.raises(NotFoundError):
        cache.find_by_path("/Docs/Nope")


def test_find_by_path_with_duplicate_sibling_names(backend, scope):
    # Two folders named "Docs"; only the second has a "Deep" child
    backend.add_folder("docs2", "Docs")
    backend.add_folder("deep", "Deep", "docs2")
    cache = TreeCache(backend)
    cache.rebuild(scope)

    assert cache.find_by_path("/Docs/Deep").id == "deep"
    assert cache.find_by_path("/Docs/Reports").id == "reports"


def test_find_by_id(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)

    assert cache.find_by_id("q1").name == "Q1.pdf"
    with pytest.raises(NotFoundError):
        cache.find_by_id("missing")


def test_children_of_and_ancestors(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)

    assert [n.name for n in cache.children_of(None)] == ["Docs", "Images", "notes.md"]
    assert [n.name for n in cache.children_of("docs")] == ["Reports", "readme.txt"]
    assert cache.ancestor_ids("q1") == ["reports", "docs"]
    with pytest.raises(NotFoundError):
        cache.children_of("q1")


def test_search_is_case_insensitive(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)

    assert [n.id for n in cache.search("RE")] == ["reports", "readme"]
    assert cache.search("   ") == []


def test_failed_rebuild_keeps_previous_tree(backend, scope):
    cache = TreeCache(backend)
    before = cache.rebuild(scope)

    backend.fail["list_scope"] = NetworkFailure("Timed out while trying to load files.")
    with pytest.raises(NetworkFailure):
        cache.rebuild(scope)

    assert cache.tree is before
    assert cache.find_by_path("/Docs/Reports/Q1.pdf").id == "q1"


def test_rebuild_swaps_in_new_snapshot(backend, scope):
    cache = TreeCache(backend)
    first = cache.rebuild(scope)
    backend.add_file("new", "new.txt")
    second = cache.rebuild(scope)

    assert second is not first
    assert "new" in second.by_id and "new" not in first.by_id
    assert cache.scope == scope


def test_clear_drops_tree(backend, scope):
    cache = TreeCache(backend)
    cache.rebuild(scope)
    cache.clear()
    assert cache.scope is None
    assert len(cache.tree) == 0
