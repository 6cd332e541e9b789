import logging
from pathlib import Path

import pytest

from bumpkit.commit import commit_message, commit_selective, verify_version_change
from bumpkit.commit_helpers import serialize_commit
from bumpkit.errors import (
    DetachedHeadError,
    IdentityError,
    NoVersionChangeError,
    RefUpdateError,
    RepositoryError,
    SigningConfigError,
)
from bumpkit.memory_repository import MemoryRepository
from bumpkit.models import AdditionalFile, FileType
from bumpkit.sshsig import verify_signature
from bumpkit.tree import lookup_path, read_blob_at

from conftest import IDENTITY, MANIFEST, make_memory_repo, write_openssh_key

MANIFEST_PATH = Path("/repo/Cargo.toml")
BUMPED = MANIFEST.replace('version = "0.1.0"', 'version = "0.2.0"')
NOW = 1_700_000_000

LOCK = """[[package]]
name = "my-crate"
version = "0.1.0"

[[package]]
name = "serde"
version = "1.0.190"
"""

README = '# my-crate\n\n```toml\nmy-crate = "0.1.0"\n```\n'


def _commit(repo, content=BUMPED, additional_files=(), manifest_path=MANIFEST_PATH):
    return commit_selective(
        manifest_path, "my-crate", "0.1.0", "0.2.0", additional_files, repo=repo, manifest_content=content, now=NOW
    )


def _committed(repo, commit_id, path):
    return read_blob_at(repo, repo.read_commit(commit_id).tree_id, path).decode()


class TestVerifyVersionChange:
    def test_changed(self):
        verify_version_change(MANIFEST, BUMPED, "0.1.0", "0.2.0")

    def test_unchanged(self):
        with pytest.raises(NoVersionChangeError):
            verify_version_change(MANIFEST, MANIFEST, "0.1.0", "0.2.0")

    def test_new_file_needs_version_and_new_version(self):
        verify_version_change(None, BUMPED, "0.1.0", "0.2.0")
        with pytest.raises(NoVersionChangeError):
            verify_version_change(None, "[package]\nname = \"x\"\n", "0.1.0", "0.2.0")


class TestCommitSelective:
    def test_pure_version_bump(self, memory_repo):
        seed_id = memory_repo.refs["refs/heads/main"]
        commit_id = _commit(memory_repo)

        commit = memory_repo.read_commit(commit_id)
        assert memory_repo.refs["refs/heads/main"] == commit_id
        assert commit.parent_ids == [seed_id]
        assert commit.message == commit_message("0.1.0", "0.2.0") == "chore(version): bump 0.1.0 -> 0.2.0"
        assert commit.author == commit.committer
        assert commit.author.name == "Test User"
        assert commit.author.seconds == NOW
        assert commit.extra_headers == []
        assert _committed(memory_repo, commit_id, "Cargo.toml") == BUMPED
        assert memory_repo.index_tree == commit.tree_id

    def test_unrelated_edit_stays_out_of_commit(self, memory_repo, caplog):
        working = BUMPED.replace('serde = "1.0"', 'serde = "1.5"')
        with caplog.at_level(logging.WARNING, logger="bumpkit.commit"):
            commit_id = _commit(memory_repo, working)
        assert _committed(memory_repo, commit_id, "Cargo.toml") == BUMPED
        assert "hunk-level" in caplog.text

    def test_other_files_are_untouched(self, memory_repo):
        seed_tree = memory_repo.read_commit(memory_repo.refs["refs/heads/main"]).tree_id
        commit_id = _commit(memory_repo)
        tree_id = memory_repo.read_commit(commit_id).tree_id
        for path in ("src/lib.rs", "src", "README.md"):
            assert lookup_path(memory_repo, tree_id, path) == lookup_path(memory_repo, seed_tree, path)

    def test_missing_identity_writes_nothing(self):
        repo = make_memory_repo({"Cargo.toml": MANIFEST}, config={})
        refs_before = dict(repo.refs)
        writes_before = repo.writes
        with pytest.raises(IdentityError, match="user.name"):
            _commit(repo)
        assert repo.writes == writes_before
        assert repo.refs == refs_before

    def test_missing_email(self):
        repo = make_memory_repo({"Cargo.toml": MANIFEST}, config={"user.name": "Test User"})
        with pytest.raises(IdentityError, match="user.email"):
            _commit(repo)

    def test_no_version_change(self, memory_repo):
        with pytest.raises(NoVersionChangeError):
            _commit(memory_repo, MANIFEST)

    def test_detached_head(self, memory_repo):
        memory_repo.detached_head = memory_repo.refs["refs/heads/main"]
        memory_repo.head_ref = None
        with pytest.raises(DetachedHeadError):
            _commit(memory_repo)

    def test_unborn_branch(self):
        repo = MemoryRepository(workdir=Path("/repo"), config=IDENTITY)
        with pytest.raises(RepositoryError):
            _commit(repo)

    def test_branch_moved_during_commit(self, memory_repo):
        seed_id = memory_repo.refs["refs/heads/main"]
        index_before = memory_repo.index_tree
        moved_to = "f" * 40
        write_commit = memory_repo.write_commit

        def racing_write_commit(commit):
            memory_repo.refs["refs/heads/main"] = moved_to
            return write_commit(commit)

        memory_repo.write_commit = racing_write_commit
        with pytest.raises(RefUpdateError):
            _commit(memory_repo)
        assert memory_repo.refs["refs/heads/main"] == moved_to != seed_id
        assert memory_repo.index_tree == index_before

    def test_manifest_not_in_head(self):
        repo = make_memory_repo({"README.md": "# workspace\n"})
        manifest_path = Path("/repo/crates/new/Cargo.toml")
        commit_id = _commit(repo, BUMPED, manifest_path=manifest_path)
        assert _committed(repo, commit_id, "crates/new/Cargo.toml") == BUMPED
        assert _committed(repo, commit_id, "README.md") == "# workspace\n"


class TestAdditionalFiles:
    @pytest.fixture
    def repo(self):
        return make_memory_repo({"Cargo.toml": MANIFEST, "Cargo.lock": LOCK, "README.md": README})

    def test_lock_file_keeps_other_packages(self, repo):
        working = LOCK.replace('version = "0.1.0"', 'version = "0.2.0"').replace("1.0.190", "1.0.200")
        lock = AdditionalFile(
            path=Path("/repo/Cargo.lock"), working_content=working, head_content=LOCK, file_type=FileType.LOCK_FILE
        )
        commit_id = _commit(repo, additional_files=[lock])
        assert _committed(repo, commit_id, "Cargo.lock") == LOCK.replace('version = "0.1.0"', 'version = "0.2.0"')
        assert _committed(repo, commit_id, "Cargo.toml") == BUMPED

    def test_readme_snippet_only(self, repo):
        working = '# my-crate\n\nNow with more docs.\n\n```toml\nmy-crate = "0.2.0"\n```\n'
        readme = AdditionalFile(
            path=Path("/repo/README.md"),
            working_content=working,
            head_content=README,
            file_type=FileType.DEPENDENCY_LISTING,
        )
        commit_id = _commit(repo, additional_files=[readme])
        assert _committed(repo, commit_id, "README.md") == README.replace("0.1.0", "0.2.0")

    def test_file_without_head_content_is_committed_whole(self, repo):
        changelog = AdditionalFile(path=Path("/repo/CHANGELOG.md"), working_content="## 0.2.0\n- things\n")
        commit_id = _commit(repo, additional_files=[changelog])
        assert _committed(repo, commit_id, "CHANGELOG.md") == "## 0.2.0\n- things\n"


class TestSignedCommits:
    def test_signature_covers_payload(self, memory_repo, tmp_path, ed25519_key, monkeypatch):
        monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)
        public_path = write_openssh_key(tmp_path, ed25519_key)
        memory_repo.config.update(
            {"commit.gpgsign": "true", "gpg.format": "ssh", "user.signingkey": str(public_path)}
        )
        commit_id = _commit(memory_repo)

        _, raw = memory_repo.read_object(commit_id)
        assert b"\ngpgsig -----BEGIN SSH SIGNATURE-----\n " in raw
        assert b"\n -----END SSH SIGNATURE-----\n\nchore(version)" in raw

        commit = memory_repo.read_commit(commit_id)
        [(name, armored)] = commit.extra_headers
        assert name == "gpgsig"
        payload = serialize_commit(commit.model_copy(update={"extra_headers": []}))
        assert verify_signature(armored, payload)

    def test_missing_signing_key_leaves_branch(self, memory_repo):
        memory_repo.config["commit.gpgsign"] = "true"
        refs_before = dict(memory_repo.refs)
        with pytest.raises(SigningConfigError):
            _commit(memory_repo)
        assert memory_repo.refs == refs_before
