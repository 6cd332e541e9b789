from pathlib import Path

from .errors import RepositoryError
from .models import AdditionalFile, FileType
from .repo_utils import relative_to_root
from .repository import Repository
from .tree import read_blob_at

LOCK_FILE_NAMES = {"Cargo.lock"}

def file_type_for(path: Path) -> FileType:
    if path.name in LOCK_FILE_NAMES:
        return FileType.LOCK_FILE
    if path.name.upper().startswith("README"):
        return FileType.DEPENDENCY_LISTING
    return FileType.GENERIC

def head_tree_id(repo: Repository) -> str | None:
    head_info = repo.head()
    if head_info.commit_id is None:
        return None
    return repo.read_commit(head_info.commit_id).tree_id

def read_working_file(repo: Repository, path: Path, file_type: FileType | None = None) -> AdditionalFile:
    try:
        working_content = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise RepositoryError(f"failed to read {path}: {e}") from e
    head_content = None
    tree_id = head_tree_id(repo)
    if tree_id is not None:
        rel = relative_to_root(repo.workdir, path) if repo.workdir else path.as_posix()
        blob = read_blob_at(repo, tree_id, rel)
        if blob is not None:
            head_content = blob.decode("utf-8", "replace")
    return AdditionalFile(
        path=path,
        working_content=working_content,
        head_content=head_content,
        file_type=file_type or file_type_for(path),
    )

def collect_additional_files(repo: Repository, paths: list[Path]) -> list[AdditionalFile]:
    # a path that cannot be read is an error, never silently left out
    return [read_working_file(repo, path) for path in paths]
