import subprocess
from pathlib import Path

from .errors import RepositoryError

def find_git_root_dir(start: Path | None = None) -> Path | None:
    start = (start or Path.cwd()).resolve()
    if start.is_file():
        start = start.parent
    for directory in [start] + list(start.parents):
        if (directory / ".git").exists():
            return directory
    return None

def run_git(git_root: Path, args: list[str], input: bytes | None = None, check: bool = True) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(["git", *args], cwd=git_root, input=input, capture_output=True)
    except OSError as e:
        raise RepositoryError(f"failed to run git: {e}") from e
    if check and result.returncode != 0:
        stderr = result.stderr.decode("utf-8", "replace").strip()
        raise RepositoryError(f"git {' '.join(args)} failed: {stderr}")
    return result

def git_output(git_root: Path, args: list[str]) -> str:
    return run_git(git_root, args).stdout.decode().strip()

def relative_to_root(git_root: Path, path: Path) -> str:
    """Slash-separated path of ``path`` inside the work tree."""
    absolute = path if path.is_absolute() else Path.cwd() / path
    try:
        return absolute.resolve().relative_to(git_root.resolve()).as_posix()
    except ValueError as e:
        raise RepositoryError(f"{path} is outside the repository at {git_root}") from e
