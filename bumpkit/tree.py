import logging
from pathlib import PurePosixPath

from .errors import ObjectStoreError
from .models import EntryMode, Tree, TreeEntry
from .repository import Repository

logger = logging.getLogger(__name__)

def split_path(path: str) -> tuple[str, ...]:
    parts = PurePosixPath(path).parts
    if not parts or parts[0] == "/" or any(part in (".", "..") for part in parts):
        raise ObjectStoreError(f"invalid repository path '{path}'")
    return parts

def lookup_path(repo: Repository, tree_id: str, path: str) -> TreeEntry | None:
    *dirs, name = split_path(path)
    tree = repo.read_tree(tree_id)
    for directory in dirs:
        entry = tree.get(directory)
        if entry is None or not entry.is_tree:
            return None
        tree = repo.read_tree(entry.object_id)
    return tree.get(name)

def read_blob_at(repo: Repository, tree_id: str, path: str) -> bytes | None:
    entry = lookup_path(repo, tree_id, path)
    if entry is None:
        return None
    if entry.is_tree or entry.mode == EntryMode.SUBMODULE:
        raise ObjectStoreError(f"'{path}' is not a file")
    return repo.read_blob(entry.object_id)

def _group_updates(updates: dict[str, str]) -> tuple[dict[str, str], dict[str, dict[str, str]]]:
    direct: dict[str, str] = {}
    nested: dict[str, dict[str, str]] = {}
    for path, object_id in updates.items():
        first, *rest = split_path(path)
        if rest:
            nested.setdefault(first, {})["/".join(rest)] = object_id
        else:
            direct[first] = object_id
    clash = direct.keys() & nested.keys()
    if clash:
        raise ObjectStoreError(f"path '{sorted(clash)[0]}' is updated both as a file and as a directory")
    return direct, nested

def rebuild_tree(repo: Repository, base_tree_id: str | None, updates: dict[str, str]) -> str:
    """Write a copy of ``base_tree_id`` with the blobs in ``updates`` swapped in.

    Keys of ``updates`` are slash-separated paths relative to the tree, values
    are blob ids. Existing entries keep their mode; every entry that is not
    named in ``updates`` is carried over with the same mode and id. Paths the
    base tree does not have yet are added as regular files.
    """
    base = repo.read_tree(base_tree_id) if base_tree_id else Tree()
    direct, nested = _group_updates(updates)

    entries: list[TreeEntry] = []
    for entry in base.entries:
        if entry.name in direct:
            if entry.is_tree:
                raise ObjectStoreError(f"cannot replace directory '{entry.name}' with a file")
            entries.append(entry.model_copy(update={"object_id": direct.pop(entry.name)}))
        elif entry.name in nested:
            if not entry.is_tree:
                raise ObjectStoreError(f"'{entry.name}' is not a directory")
            subtree_id = rebuild_tree(repo, entry.object_id, nested.pop(entry.name))
            entries.append(entry.model_copy(update={"object_id": subtree_id}))
        else:
            entries.append(entry)

    for name, object_id in direct.items():
        logger.debug("adding new file entry %s", name)
        entries.append(TreeEntry(mode=EntryMode.BLOB, name=name, object_id=object_id))
    for name, sub_updates in nested.items():
        logger.debug("adding new directory entry %s", name)
        subtree_id = rebuild_tree(repo, None, sub_updates)
        entries.append(TreeEntry(mode=EntryMode.TREE, name=name, object_id=subtree_id))

    if len(entries) < len(base.entries):
        raise ObjectStoreError("tree rebuild lost entries")
    return repo.write_tree(Tree(entries=entries))
