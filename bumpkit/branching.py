from .errors import DetachedHeadError, RepositoryError
from .models import HeadInfo
from .repository import Repository

BRANCH_PREFIX = "refs/heads/"

def get_current_branch(repo: Repository) -> str | None:
    head_info = repo.head()
    if head_info.type == "commit":
        return None
    return head_info.value.removeprefix(BRANCH_PREFIX)

def require_branch(head_info: HeadInfo) -> str:
    if head_info.type == "unborn" or head_info.commit_id is None:
        raise RepositoryError(f"HEAD does not point to a commit yet ({head_info.value} is unborn)")
    if head_info.type == "commit":
        raise DetachedHeadError("HEAD is not a reference (detached HEAD state); check out a branch first")
    return head_info.value

def update_branch_head(repo: Repository, head_info: HeadInfo, new_commit_hash: str) -> None:
    # compare-and-swap against the commit HEAD pointed at when we started
    ref = require_branch(head_info)
    repo.update_ref(ref, new_commit_hash, head_info.commit_id)
