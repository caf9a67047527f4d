"""Pull request reconciliation: one open PR per (head, base)."""

from typing import List, Optional

from ..core.errors import GitHubError
from ..core.logging import get_logger
from ..models import PRResult
from ..tools.github import GitHubClient

logger = get_logger(__name__)


class PRReconciler:
    """Finds and updates the open PR for a branch, or opens one."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def reconcile_pr(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
        reviewers: Optional[List[str]] = None,
    ) -> PRResult:
        """Update the existing open PR in place or create a new one.

        Labels and reviewers are only applied to newly created PRs. Their
        failures are reported in `PRResult.warnings`; the PR stays open.
        """
        log_extra = {"owner": owner, "repo": repo, "branch": head}
        try:
            existing = await self.github.list_pulls(owner, repo, head, base)
        except GitHubError as e:
            logger.warning(f"Listing pull requests failed, creating instead: {e}", extra=log_extra)
            existing = []

        if existing:
            pr = existing[0]
            updated = await self.github.update_pull(owner, repo, pr["number"], title, body)
            url = (updated or {}).get("html_url") or pr["html_url"]
            logger.info(f"Updated PR #{pr['number']}", extra=log_extra)
            return PRResult(url=url, number=pr["number"], created=False)

        pr = await self.github.create_pull(owner, repo, head, base, title, body)
        number = pr["number"]
        logger.info(f"Opened PR #{number}", extra=log_extra)

        warnings: List[str] = []
        if labels:
            try:
                await self.github.add_labels(owner, repo, number, labels)
            except GitHubError as e:
                logger.warning(f"Adding labels to PR #{number} failed: {e}", extra=log_extra)
                warnings.append(f"labels_failed: {e.message}")
        if reviewers:
            try:
                await self.github.request_reviewers(owner, repo, number, reviewers)
            except GitHubError as e:
                logger.warning(f"Requesting reviewers on PR #{number} failed: {e}", extra=log_extra)
                warnings.append(f"reviewers_failed: {e.message}")

        return PRResult(url=pr["html_url"], number=number, created=True, warnings=warnings)
