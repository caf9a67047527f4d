"""Apply service: gate, branch, commit and pull request for one /apply call."""

from typing import Optional, Tuple

from ..core.config import AppConfig
from ..core.errors import InvalidRequest
from ..core.logging import get_logger
from ..models import ApplyRequest, ApplyResult
from ..tools.github import GitHubClient
from ..tools.path_gate import PathGate
from .branches import BranchResolver
from .committer import BatchCommitter
from .pull_requests import PRReconciler

logger = get_logger(__name__)


def resolve_repo(config: AppConfig, owner: Optional[str], repo: Optional[str]) -> Tuple[str, str]:
    """Fill owner/repo from configured defaults.

    Raises:
        InvalidRequest: If either is still missing
    """
    owner = owner or config.github.default_owner
    repo = repo or config.github.default_repo
    if not owner or not repo:
        raise InvalidRequest("owner and repo are required (or set REPO_OWNER/REPO_NAME)")
    return owner, repo


class ApplyService:
    """Runs the /apply flow against one GitHub client."""

    def __init__(self, config: AppConfig, github: GitHubClient, gate: PathGate):
        self.config = config
        self.gate = gate
        self.branches = BranchResolver(github)
        self.committer = BatchCommitter(github)
        self.pull_requests = PRReconciler(github)

    async def apply(self, request: ApplyRequest, workflow_approval: Optional[str] = None) -> ApplyResult:
        """Apply a validated batch and open or update its pull request.

        All gate decisions happen before the first remote call.
        """
        owner, repo = resolve_repo(self.config, request.owner, request.repo)
        self.gate.check([edit.path for edit in request.edits], workflow_approval)

        log_extra = {"owner": owner, "repo": repo, "branch": request.branch}
        logger.info(
            f"Applying {len(request.edits)} edit(s) with strategy {request.branch_strategy}",
            extra=log_extra,
        )

        head = await self.branches.resolve_head(
            owner, repo, request.branch, request.base_branch, request.branch_strategy
        )
        commit = await self.committer.commit_batch(owner, repo, request.branch, head, request.edits)
        pr = await self.pull_requests.reconcile_pr(
            owner,
            repo,
            head=request.branch,
            base=request.base_branch,
            title=request.pr_title,
            body=request.pr_body,
            labels=request.labels,
            reviewers=request.reviewers,
        )
        return ApplyResult(
            branch=request.branch,
            commit=commit,
            pr_url=pr.url,
            created=pr.created,
            warnings=pr.warnings,
        )
