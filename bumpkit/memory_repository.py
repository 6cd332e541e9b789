from pathlib import Path

from .errors import ObjectStoreError, RefUpdateError
from .models import HeadInfo
from .objects import hash_object
from .repository import Repository


class MemoryRepository(Repository):
    """In-memory repository with git-compatible object ids.

    ``head_ref`` is the symbolic target of HEAD (``None`` when detached, in
    which case ``detached_head`` holds the commit id).
    """

    def __init__(self, workdir: Path | None = None, config: dict[str, str] | None = None) -> None:
        self.workdir = workdir
        self.objects: dict[str, tuple[str, bytes]] = {}
        self.refs: dict[str, str] = {}
        self.config = dict(config or {})
        self.head_ref: str | None = "refs/heads/main"
        self.detached_head: str | None = None
        self.index_tree: str | None = None
        self.writes = 0

    def read_object(self, object_id: str) -> tuple[str, bytes]:
        try:
            return self.objects[object_id]
        except KeyError:
            raise ObjectStoreError(f"object {object_id} does not exist") from None

    def write_object(self, kind: str, body: bytes) -> str:
        object_id = hash_object(kind, body)
        if object_id not in self.objects:
            self.objects[object_id] = (kind, body)
            self.writes += 1
        return object_id

    def read_config(self, key: str) -> str | None:
        return self.config.get(key)

    def head(self) -> HeadInfo:
        if self.head_ref is None:
            if self.detached_head is None:
                raise ObjectStoreError("HEAD is not set")
            return HeadInfo(type="commit", value=self.detached_head, commit_id=self.detached_head)
        commit_id = self.refs.get(self.head_ref)
        if commit_id is None:
            return HeadInfo(type="unborn", value=self.head_ref)
        return HeadInfo(type="branch", value=self.head_ref, commit_id=commit_id)

    def update_ref(self, ref: str, new_id: str, expected_id: str | None) -> None:
        current = self.refs.get(ref)
        if current != expected_id:
            raise RefUpdateError(f"failed to move {ref}: expected {expected_id}, found {current}")
        self.refs[ref] = new_id

    def write_index(self, tree_id: str) -> None:
        self.index_tree = tree_id
