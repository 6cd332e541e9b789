import logging
import subprocess
from pathlib import Path

from .errors import ObjectStoreError, RefUpdateError, RepositoryError
from .models import HeadInfo
from .objects import read_loose_object, write_loose_object
from .repo_utils import find_git_root_dir, git_output, run_git
from .repository import Repository, parse_config_bool

logger = logging.getLogger(__name__)

ZERO_ID = "0" * 40


class CatFileBatch:
    def __init__(self, git_root: Path) -> None:
        self._proc = subprocess.Popen(
            ["git", "cat-file", "--batch"],
            cwd=git_root,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
        )

    def __enter__(self) -> "CatFileBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._proc.stdin:
            self._proc.stdin.close()
        if self._proc.stdout:
            self._proc.stdout.close()
        self._proc.wait()

    def get_object(self, object_spec: str) -> tuple[str, bytes] | None:
        if not self._proc.stdin or not self._proc.stdout:
            raise ObjectStoreError("cat-file batch process not initialized")
        self._proc.stdin.write(f"{object_spec}\n".encode())
        self._proc.stdin.flush()

        header = self._proc.stdout.readline()
        if not header:
            raise ObjectStoreError("cat-file batch process terminated unexpectedly")
        header = header.rstrip(b"\n")
        if header.endswith(b" missing"):
            return None

        parts = header.split(b" ")
        if len(parts) < 3:
            raise ObjectStoreError(f"unexpected cat-file header: {header!r}")

        obj_type = parts[1].decode("utf-8", "replace")
        size = int(parts[2])
        content = self._proc.stdout.read(size)
        self._proc.stdout.read(1)  # trailing newline
        return obj_type, content


class GitRepository(Repository):
    """A repository on disk.

    New objects are written as loose objects; reads fall back to
    ``git cat-file --batch`` so packed objects are found too. Config, HEAD,
    ref updates and the index go through the git binary.
    """

    def __init__(self, workdir: Path) -> None:
        self.workdir = workdir
        self.git_dir = Path(git_output(workdir, ["rev-parse", "--absolute-git-dir"]))
        objects = Path(git_output(workdir, ["rev-parse", "--git-path", "objects"]))
        self.objects_dir = objects if objects.is_absolute() else workdir / objects
        self._cat_file: CatFileBatch | None = None

    @classmethod
    def discover(cls, start: Path | None = None) -> "GitRepository":
        git_root = find_git_root_dir(start)
        if git_root is None:
            raise RepositoryError(f"not in a git repository: {start or Path.cwd()}")
        return cls(git_root)

    def __enter__(self) -> "GitRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._cat_file is not None:
            self._cat_file.close()
            self._cat_file = None

    def read_object(self, object_id: str) -> tuple[str, bytes]:
        loose = read_loose_object(self.objects_dir, object_id)
        if loose is not None:
            return loose
        if self._cat_file is None:
            self._cat_file = CatFileBatch(self.workdir)
        found = self._cat_file.get_object(object_id)
        if found is None:
            raise ObjectStoreError(f"object {object_id} does not exist")
        return found

    def write_object(self, kind: str, body: bytes) -> str:
        object_id = write_loose_object(self.objects_dir, kind, body)
        logger.debug("wrote %s %s", kind, object_id)
        return object_id

    def read_config(self, key: str) -> str | None:
        result = run_git(self.workdir, ["config", "--get", key], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.decode("utf-8", "replace").rstrip("\n")

    def read_config_bool(self, key: str) -> bool | None:
        result = run_git(self.workdir, ["config", "--type=bool", "--get", key], check=False)
        if result.returncode != 0:
            return None
        return parse_config_bool(result.stdout.decode().strip())

    def head(self) -> HeadInfo:
        symbolic = run_git(self.workdir, ["symbolic-ref", "-q", "HEAD"], check=False)
        if symbolic.returncode == 0:
            ref = symbolic.stdout.decode().strip()
            resolved = run_git(self.workdir, ["rev-parse", "-q", "--verify", ref], check=False)
            if resolved.returncode != 0:
                return HeadInfo(type="unborn", value=ref)
            return HeadInfo(type="branch", value=ref, commit_id=resolved.stdout.decode().strip())
        resolved = run_git(self.workdir, ["rev-parse", "-q", "--verify", "HEAD"], check=False)
        if resolved.returncode != 0:
            raise RepositoryError("failed to read HEAD")
        commit_id = resolved.stdout.decode().strip()
        return HeadInfo(type="commit", value=commit_id, commit_id=commit_id)

    def update_ref(self, ref: str, new_id: str, expected_id: str | None) -> None:
        result = run_git(
            self.workdir,
            ["update-ref", "-m", "bump version", ref, new_id, expected_id or ZERO_ID],
            check=False,
        )
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", "replace").strip()
            raise RefUpdateError(f"failed to move {ref} from {expected_id} to {new_id}: {stderr}")

    def write_index(self, tree_id: str) -> None:
        run_git(self.workdir, ["read-tree", tree_id])
