import shutil
import socket
import struct
import subprocess
import threading
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from bumpkit.commit_helpers import now_signature
from bumpkit.memory_repository import MemoryRepository
from bumpkit.models import Commit
from bumpkit.sshsig import encode_string, public_key_blob, read_string, sign_with_private_key
from bumpkit.tree import rebuild_tree

MANIFEST = """[package]
name = "my-crate"
version = "0.1.0"
edition = "2021"

[dependencies]
serde = "1.0"
"""

IDENTITY = {"user.name": "Test User", "user.email": "test@example.com"}


def make_memory_repo(files: dict[str, str], config: dict[str, str] | None = None) -> MemoryRepository:
    repo = MemoryRepository(workdir=Path("/repo"), config=IDENTITY if config is None else config)
    updates = {path: repo.write_blob(content.encode()) for path, content in files.items()}
    tree_id = rebuild_tree(repo, None, updates)
    author = now_signature("Seed", "seed@example.com", 1_600_000_000)
    commit_id = repo.write_commit(
        Commit(tree_id=tree_id, author=author, committer=author, message="initial\n")
    )
    repo.refs["refs/heads/main"] = commit_id
    repo.index_tree = tree_id
    return repo


@pytest.fixture
def memory_repo():
    return make_memory_repo(
        {
            "Cargo.toml": MANIFEST,
            "src/lib.rs": "pub fn answer() -> u32 { 42 }\n",
            "README.md": "# my-crate\n",
        }
    )


def git(repo_path: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo_path, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def isolated_git_env(tmp_path, monkeypatch):
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)
    for name in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def git_repo(tmp_path, isolated_git_env):
    repo_path = tmp_path / "repo"
    repo_path.mkdir()
    git(repo_path, "init", "-q")
    git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo_path, "config", "user.name", "Test User")
    git(repo_path, "config", "user.email", "test@example.com")
    git(repo_path, "config", "commit.gpgsign", "false")

    (repo_path / "Cargo.toml").write_text(MANIFEST)
    (repo_path / "src").mkdir()
    (repo_path / "src" / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n")
    (repo_path / "src" / "nested").mkdir()
    (repo_path / "src" / "nested" / "deep.rs").write_text("// deep\n")
    (repo_path / "README.md").write_text('# my-crate\n\n```toml\nmy-crate = "0.1.0"\n```\n')
    (repo_path / "run.sh").write_text("#!/bin/sh\necho hi\n")
    (repo_path / "run.sh").chmod(0o755)
    git(repo_path, "add", ".")
    git(repo_path, "commit", "-q", "-m", "initial")
    return repo_path


@pytest.fixture
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()


def write_openssh_key(directory: Path, private_key, name: str = "id_ed25519", comment: str = "test@host") -> Path:
    """Write ``name`` and ``name.pub`` and return the public key path."""
    private_path = directory / name
    private_path.write_bytes(
        private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        )
    )
    public_line = private_key.public_key().public_bytes(
        serialization.Encoding.OpenSSH, serialization.PublicFormat.OpenSSH
    )
    public_path = directory / f"{name}.pub"
    public_path.write_text(public_line.decode() + f" {comment}\n")
    return public_path


class FakeAgent:
    """Speaks the agent protocol on one end of a socket pair."""

    def __init__(self, keys: list[tuple[object, str]], refuse: bool = False) -> None:
        self.keys = keys
        self.refuse = refuse
        self.requests: list[int] = []
        self.sign_flags: list[int] = []
        self.client_sock, self._server_sock = socket.socketpair()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _recv_exact(self, size: int) -> bytes:
        data = b""
        while len(data) < size:
            chunk = self._server_sock.recv(size - len(data))
            if not chunk:
                raise EOFError
            data += chunk
        return data

    def _reply(self, message_type: int, body: bytes = b"") -> None:
        message = bytes([message_type]) + body
        self._server_sock.sendall(struct.pack(">I", len(message)) + message)

    def _serve(self) -> None:
        try:
            while True:
                (length,) = struct.unpack(">I", self._recv_exact(4))
                message = self._recv_exact(length)
                self.requests.append(message[0])
                if message[0] == 11:
                    body = struct.pack(">I", len(self.keys))
                    for key, comment in self.keys:
                        body += encode_string(public_key_blob(key.public_key())) + encode_string(comment)
                    self._reply(12, body)
                elif message[0] == 13 and not self.refuse:
                    key_blob, offset = read_string(message, 1)
                    data, offset = read_string(message, offset)
                    self.sign_flags.append(struct.unpack_from(">I", message, offset)[0])
                    key = next(k for k, _ in self.keys if public_key_blob(k.public_key()) == key_blob)
                    self._reply(14, encode_string(sign_with_private_key(key, data)))
                else:
                    self._reply(5)
        except (EOFError, OSError):
            pass
        finally:
            self._server_sock.close()
