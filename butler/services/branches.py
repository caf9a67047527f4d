"""Branch resolution: find or create the branch a batch is committed onto."""

from typing import Literal

from ..core.errors import BranchExists, GitHubError
from ..core.logging import get_logger
from ..tools.github import GitHubClient

logger = get_logger(__name__)

BranchStrategy = Literal["create", "reuse"]


class BranchResolver:
    """Determines the parent commit for new edits, creating the branch if needed."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def create_branch(self, owner: str, repo: str, branch: str, base_branch: str) -> str:
        """Create `branch` at the head of `base_branch`.

        Raises:
            BranchExists: If the ref already exists
        """
        base_sha = await self.github.get_branch_sha(owner, repo, base_branch)
        try:
            await self.github.create_ref(owner, repo, branch, base_sha)
        except GitHubError as e:
            if e.ref_exists:
                raise BranchExists(
                    f"branch '{branch}' already exists",
                    branch=branch,
                    hint="choose another branch name or send branchStrategy=reuse",
                ) from e
            raise
        logger.info(
            f"Created branch {branch} from {base_branch}@{base_sha[:7]}",
            extra={"owner": owner, "repo": repo, "branch": branch},
        )
        return base_sha

    async def resolve_head(
        self,
        owner: str,
        repo: str,
        branch: str,
        base_branch: str,
        strategy: BranchStrategy = "create",
    ) -> str:
        """Return the SHA new edits must be parented on.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Target branch
            base_branch: Branch to fork from when `branch` is created
            strategy: "create" fails on an existing branch; "reuse" adopts it

        Returns:
            Head commit SHA of the (possibly new) branch
        """
        if strategy == "create":
            return await self.create_branch(owner, repo, branch, base_branch)

        try:
            sha = await self.github.get_branch_sha(owner, repo, branch)
        except GitHubError as e:
            if not e.not_found:
                raise
        else:
            logger.info(
                f"Reusing branch {branch}@{sha[:7]}",
                extra={"owner": owner, "repo": repo, "branch": branch},
            )
            return sha

        try:
            return await self.create_branch(owner, repo, branch, base_branch)
        except BranchExists:
            # Created concurrently between our lookup and create; adopt it
            return await self.github.get_branch_sha(owner, repo, branch)
