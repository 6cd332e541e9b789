from pathlib import Path
from typing import Callable

from .branching import get_current_branch
from .commit import commit_selective
from .errors import BumpError
from .git_repository import GitRepository
from .models import FileType
from .signing import read_signing_config
from .working_files import collect_additional_files, read_working_file

def map_command(command: str) -> Callable:
    commandsMap = {
        "commit": commit,
        "signing-config": signing_config,
    }
    if command not in commandsMap:
        raise BumpError(f"Unknown command: {command}")
    return commandsMap[command]

def commit(args):
    manifest_path = Path(args.manifest_path)
    with GitRepository.discover(manifest_path.parent) as repo:
        additional_files = []
        if args.lock:
            additional_files.append(read_working_file(repo, Path(args.lock), FileType.LOCK_FILE))
        if args.readme:
            additional_files.append(read_working_file(repo, Path(args.readme), FileType.DEPENDENCY_LISTING))
        additional_files += collect_additional_files(repo, [Path(p) for p in args.file or []])
        commit_hash = commit_selective(
            manifest_path,
            args.crate,
            args.old_version,
            args.new_version,
            additional_files,
            repo=repo,
        )
        branch = get_current_branch(repo)
    file_count = len(additional_files) + 1
    print(f"Committed version bump {args.old_version} -> {args.new_version} "
          f"({file_count} file{'' if file_count == 1 else 's'}) on '{branch}' as {commit_hash}")

def signing_config(args):
    with GitRepository.discover(Path(args.path)) as repo:
        config = read_signing_config(repo)
    print(f"enabled: {str(config.enabled).lower()}")
    print(f"format: {config.format.value}")
    print(f"signing key: {config.signing_key or '(not set)'}")
