from abc import ABC, abstractmethod
from pathlib import Path

from .commit_helpers import parse_commit, serialize_commit
from .errors import ObjectStoreError
from .models import Commit, HeadInfo, Tree
from .objects import parse_tree, serialize_tree

_TRUE = {"true", "yes", "on", "1", ""}
_FALSE = {"false", "no", "off", "0"}

def parse_config_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return None

class Repository(ABC):
    """Everything the commit workflow needs from a repository.

    Subclasses provide raw object access, configuration, HEAD resolution,
    the compare-and-swap ref update and the index reset; the typed object
    helpers are shared.
    """

    workdir: Path | None = None

    @abstractmethod
    def read_object(self, object_id: str) -> tuple[str, bytes]:
        ...

    @abstractmethod
    def write_object(self, kind: str, body: bytes) -> str:
        ...

    @abstractmethod
    def read_config(self, key: str) -> str | None:
        ...

    def read_config_bool(self, key: str) -> bool | None:
        return parse_config_bool(self.read_config(key))

    @abstractmethod
    def head(self) -> HeadInfo:
        ...

    @abstractmethod
    def update_ref(self, ref: str, new_id: str, expected_id: str | None) -> None:
        ...

    @abstractmethod
    def write_index(self, tree_id: str) -> None:
        ...

    def _read_kind(self, object_id: str, kind: str) -> bytes:
        actual, body = self.read_object(object_id)
        if actual != kind:
            raise ObjectStoreError(f"object {object_id} is a {actual}, not a {kind}")
        return body

    def read_blob(self, object_id: str) -> bytes:
        return self._read_kind(object_id, "blob")

    def write_blob(self, content: bytes) -> str:
        return self.write_object("blob", content)

    def read_tree(self, object_id: str) -> Tree:
        return parse_tree(self._read_kind(object_id, "tree"))

    def write_tree(self, tree: Tree) -> str:
        return self.write_object("tree", serialize_tree(tree))

    def read_commit(self, object_id: str) -> Commit:
        return parse_commit(self._read_kind(object_id, "commit"))

    def write_commit(self, commit: Commit) -> str:
        if len(commit.parent_ids) > 1:
            raise ObjectStoreError("merge commits are not supported")
        return self.write_object("commit", serialize_commit(commit))
