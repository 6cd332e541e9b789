"""Selective version-bump commits.

Only the version lines of the participating files are committed. The commit
is built straight from objects (blob, rebuilt tree, commit) so the user's
index and any other uncommitted edits are never touched, apart from the
final index reset to the new HEAD tree.
"""

import logging
from pathlib import Path
from typing import Sequence

from .branching import require_branch, update_branch_head
from .commit_helpers import SIGNATURE_HEADER, build_payload, now_signature
from .diff import stage_content
from .errors import IdentityError, NoVersionChangeError, ObjectStoreError, RepositoryError
from .git_repository import GitRepository
from .matchers import matcher_for
from .models import AdditionalFile, Commit, FileType, HeadInfo, Signature
from .repo_utils import relative_to_root
from .repository import Repository
from .signing import read_signing_config, sign_commit_payload
from .tree import read_blob_at, rebuild_tree

logger = logging.getLogger(__name__)

def commit_message(old_version: str, new_version: str) -> str:
    return f"chore(version): bump {old_version} -> {new_version}"

def verify_version_change(
    head_content: str | None,
    working_content: str,
    old_version: str,
    new_version: str,
) -> None:
    if head_content is not None:
        changed = old_version in head_content and new_version in working_content
    else:
        changed = "version" in working_content and new_version in working_content
    if not changed:
        raise NoVersionChangeError("no version-related changes found")

def read_identity(repo: Repository, seconds: int | None = None) -> Signature:
    name = repo.read_config("user.name")
    if not name:
        raise IdentityError(
            "git config 'user.name' is not set.\n"
            "Please configure it with:\n"
            '  git config user.name "Your Name"'
        )
    email = repo.read_config("user.email")
    if not email:
        raise IdentityError(
            "git config 'user.email' is not set.\n"
            "Please configure it with:\n"
            '  git config user.email "your.email@example.com"'
        )
    return now_signature(name, email, seconds)

def _repo_path(repo: Repository, path: Path) -> str:
    if repo.workdir is None:
        return path.as_posix()
    return relative_to_root(repo.workdir, path)

def _read_head(repo: Repository) -> tuple[HeadInfo, Commit]:
    head_info = repo.head()
    require_branch(head_info)
    try:
        head_commit = repo.read_commit(head_info.commit_id)
    except ObjectStoreError as e:
        raise RepositoryError(f"HEAD is not a commit: {e}") from e
    return head_info, head_commit

def _decode(content: bytes | None) -> str | None:
    return None if content is None else content.decode("utf-8", "replace")

def commit_selective(
    manifest_path: Path,
    crate_name: str,
    old_version: str,
    new_version: str,
    additional_files: Sequence[AdditionalFile] = (),
    repo: Repository | None = None,
    manifest_content: str | None = None,
    now: int | None = None,
) -> str:
    """Commit the version bump in ``manifest_path`` and ``additional_files``.

    Returns the new commit id. ``manifest_content`` overrides the working
    copy read from disk and ``now`` the commit timestamp.
    """
    manifest_path = Path(manifest_path)
    if repo is None:
        with GitRepository.discover(manifest_path.parent) as git_repo:
            return commit_selective(
                manifest_path, crate_name, old_version, new_version,
                additional_files, git_repo, manifest_content, now,
            )
    if manifest_content is None:
        try:
            manifest_content = manifest_path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RepositoryError(f"failed to read {manifest_path}: {e}") from e

    head_info, head_commit = _read_head(repo)

    manifest_rel = _repo_path(repo, manifest_path)
    manifest_head = _decode(read_blob_at(repo, head_commit.tree_id, manifest_rel))
    verify_version_change(manifest_head, manifest_content, old_version, new_version)

    # identity and signing config are checked before anything is written
    author = read_identity(repo, now)
    signing_config = read_signing_config(repo)

    staged: list[tuple[str, str]] = []
    manifest_matcher = matcher_for(FileType.GENERIC, crate_name, old_version, new_version)
    if manifest_head is None:
        staged.append((manifest_rel, manifest_content))
    else:
        content, hunk_level = stage_content(manifest_head, manifest_content, manifest_matcher)
        if hunk_level:
            logger.warning("using hunk-level staging for %s: only version lines will be committed", manifest_rel)
        staged.append((manifest_rel, content))

    for file in additional_files:
        file_rel = _repo_path(repo, file.path)
        if file.head_content is None:
            staged.append((file_rel, file.working_content))
            continue
        matcher = matcher_for(file.file_type, crate_name, old_version, new_version)
        content, hunk_level = stage_content(file.head_content, file.working_content, matcher)
        if hunk_level:
            logger.warning("using hunk-level staging for %s: only version lines will be committed", file_rel)
        staged.append((file_rel, content))

    updates: dict[str, str] = {}
    for path, content in staged:
        updates[path] = repo.write_blob(content.encode())
    tree_id = rebuild_tree(repo, head_commit.tree_id, updates)

    message = commit_message(old_version, new_version)
    extra_headers: list[tuple[str, bytes]] = []
    if signing_config.enabled:
        payload = build_payload(tree_id, head_info.commit_id, author, author, message)
        signature = sign_commit_payload(signing_config, payload)
        if signature is not None:
            extra_headers.append((SIGNATURE_HEADER, signature))

    commit_id = repo.write_commit(
        Commit(
            tree_id=tree_id,
            parent_ids=[head_info.commit_id],
            author=author,
            committer=author,
            message=message,
            extra_headers=extra_headers,
        )
    )
    update_branch_head(repo, head_info, commit_id)
    repo.write_index(tree_id)
    logger.info("committed %s (%d file%s)", commit_id, len(staged), "" if len(staged) == 1 else "s")
    return commit_id
