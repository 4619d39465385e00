from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from docvault.errors import DataIntegrityError
from docvault.models import (
    CompleteTree,
    FileNode,
    FileRecord,
    FolderNode,
    FolderRecord,
    Node,
    Scope,
)

logger = logging.getLogger(__name__)


def build_tree(
    folders: Sequence[FolderRecord],
    files: Sequence[FileRecord],
    scope: Optional[Scope] = None,
) -> CompleteTree:
    """Turn flat folder/file records into a nested forest with derived paths.

    Records whose parent is missing from ``folders`` are attached at the scope
    root (partial or paginated listings) and reported in ``orphans``.
    Raises DataIntegrityError on duplicate ids or parent cycles.
    """
    _check_unique_ids(folders, files)

    folder_ids = {f.id for f in folders}
    orphans: List[str] = []

    folders_by_parent: Dict[Optional[str], List[FolderRecord]] = defaultdict(list)
    for folder in folders:
        parent = folder.parent_id
        if parent is not None and parent not in folder_ids:
            logger.warning(
                f"Folder {folder.id} ({folder.name!r}) references missing parent "
                f"{parent}; attaching at root"
            )
            orphans.append(folder.id)
            parent = None
        folders_by_parent[parent].append(folder)

    files_by_folder: Dict[Optional[str], List[FileRecord]] = defaultdict(list)
    for rec in files:
        parent = rec.folder_id
        if parent is not None and parent not in folder_ids:
            logger.warning(
                f"File {rec.id} ({rec.name!r}) references missing folder "
                f"{parent}; attaching at root"
            )
            orphans.append(rec.id)
            parent = None
        files_by_folder[parent].append(rec)

    by_id: Dict[str, Node] = {}

    def expand(parent_id: Optional[str]) -> List[Node]:
        children: List[Node] = []
        for rec in folders_by_parent.get(parent_id, []):
            node = FolderNode.from_record(rec)
            node.parent_id = parent_id
            by_id[node.id] = node
            node.children = expand(node.id)
            children.append(node)
        for rec in files_by_folder.get(parent_id, []):
            file_node = FileNode.from_record(rec)
            file_node.parent_id = parent_id
            by_id[file_node.id] = file_node
            children.append(file_node)
        return children

    roots = expand(None)

    # Folders in a parent cycle never hang off the root
    unreachable = sorted(folder_ids - by_id.keys())
    if unreachable:
        raise DataIntegrityError(
            f"Folder parent references form a cycle: {', '.join(unreachable)}"
        )

    assign_paths(roots)
    logger.debug(
        f"Built tree with {len(by_id)} nodes ({len(folders)} folders, {len(files)} files)"
    )
    return CompleteTree(
        scope=scope, roots=tuple(roots), by_id=by_id, orphans=tuple(orphans)
    )


def _check_unique_ids(
    folders: Sequence[FolderRecord], files: Sequence[FileRecord]
) -> None:
    seen = set()
    dupes = set()
    for rec in list(folders) + list(files):
        if rec.id in seen:
            dupes.add(rec.id)
        seen.add(rec.id)
    if dupes:
        raise DataIntegrityError(f"Duplicate node ids in listing: {', '.join(sorted(dupes))}")


def assign_paths(nodes: Iterable[Node], parent_path: str = "") -> None:
    """Second pass: set ``path`` top-down from the accumulated parent path."""
    for node in nodes:
        node.path = f"{parent_path}/{node.name}"
        if isinstance(node, FolderNode):
            assign_paths(node.children, node.path)


def walk(nodes: Iterable[Node]) -> Iterator[Node]:
    """Depth-first, pre-order traversal of a forest."""
    for node in nodes:
        yield node
        if isinstance(node, FolderNode):
            yield from walk(node.children)
