from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .sshsig import fingerprint, read_string

class EntryMode(str, Enum):
    BLOB = "100644"
    EXECUTABLE = "100755"
    TREE = "40000"
    SYMLINK = "120000"
    SUBMODULE = "160000"

class TreeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: EntryMode
    name: str
    object_id: str

    @property
    def is_tree(self) -> bool:
        return self.mode == EntryMode.TREE

class Tree(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: list[TreeEntry] = Field(default_factory=list)

    def get(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

class Signature(BaseModel):
    name: str
    email: str
    seconds: int
    offset_minutes: int = 0

class Commit(BaseModel):
    model_config = ConfigDict(frozen=True)

    tree_id: str
    parent_ids: list[str] = Field(default_factory=list)
    author: Signature
    committer: Signature
    message: str
    extra_headers: list[tuple[str, bytes]] = Field(default_factory=list)

    @property
    def parent_id(self) -> str | None:
        return self.parent_ids[0] if self.parent_ids else None

class FileType(str, Enum):
    GENERIC = "generic"
    DEPENDENCY_LISTING = "dependency-listing"
    LOCK_FILE = "lock-file"

class AdditionalFile(BaseModel):
    path: Path
    working_content: str
    head_content: str | None = None
    file_type: FileType = FileType.GENERIC

class SigningFormat(str, Enum):
    SSH = "ssh"
    GPG = "openpgp"

class SigningConfig(BaseModel):
    enabled: bool = False
    format: SigningFormat = SigningFormat.SSH
    signing_key: str | None = None

class Identity(BaseModel):
    key_blob: bytes
    comment: str = ""

    @property
    def key_type(self) -> str:
        name, _ = read_string(self.key_blob, 0)
        return name.decode("ascii", "replace")

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.key_blob)

class HeadInfo(BaseModel):
    type: Literal["branch", "commit", "unborn"]
    value: str  # ref name (branch/unborn) or commit hash
    commit_id: str | None = None
