"""Batch committer: turns an ordered list of edits into a single commit.

The commit object is only built after every edit has been evaluated, so a
failure part-way through a batch never publishes anything. Unmodified files
are inherited from the parent tree through ``base_tree``.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..core.errors import NoChange
from ..core.logging import get_logger
from ..models import EditOperation, ReplaceEdit, TreeEntry, WriteEdit
from ..tools.github import GitHubClient
from ..tools.path_gate import normalize_path

logger = get_logger(__name__)

_MISSING = object()


class BatchView:
    """Reads files as the batch sees them: staged content first, then the branch tip."""

    def __init__(self, github: GitHubClient, owner: str, repo: str, ref: str):
        self.github = github
        self.owner = owner
        self.repo = repo
        self.ref = ref
        self._tip: Dict[str, Optional[bytes]] = {}
        self._staged: Dict[str, bytes] = {}

    async def tip(self, path: str) -> Optional[bytes]:
        """Content at the branch tip, ignoring anything staged by this batch."""
        cached = self._tip.get(path, _MISSING)
        if cached is _MISSING:
            cached = await self.github.get_file(self.owner, self.repo, path, self.ref)
            self._tip[path] = cached
        return cached

    async def read(self, path: str) -> Optional[bytes]:
        if path in self._staged:
            return self._staged[path]
        return await self.tip(path)

    def stage(self, path: str, data: bytes) -> None:
        self._staged[path] = data


def commit_message(changed_paths: Sequence[str], batch_size: int, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    header = f"chore(butler): apply {len(changed_paths)} of {batch_size} edit(s) [{stamp}]"
    return header + "\n\n" + "\n".join(f"- {p}" for p in changed_paths)


class BatchCommitter:
    """Builds one tree/commit pair from a batch and advances the branch to it."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def _evaluate(self, view: BatchView, edits: Sequence[EditOperation]) -> Dict[str, bytes]:
        changed: Dict[str, bytes] = {}
        for edit in edits:
            path = normalize_path(edit.path)

            if isinstance(edit, WriteEdit):
                data = edit.decoded()
                existing = await view.read(path)
                if existing is not None:
                    if edit.mode == "create":
                        logger.info(f"Skipping create of existing file {path}", extra={"path": path})
                        continue
                    if edit.mode == "append":
                        data = existing + b"\n" + data
                changed[path] = data
                view.stage(path, data)
                continue

            existing = await view.read(path)
            if existing is None:
                logger.warning(f"Replace target {path} is not a file; skipping", extra={"path": path})
                continue
            try:
                before = existing.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning(f"Replace target {path} is not UTF-8 text; skipping", extra={"path": path})
                continue
            after = edit.apply_to(before)
            if after == before:
                logger.info(f"Replace in {path} changed nothing", extra={"path": path})
                continue
            data = after.encode("utf-8")
            changed[path] = data
            view.stage(path, data)

        for path in list(changed):
            if changed[path] == await view.tip(path):
                logger.info(f"{path} ends the batch unchanged", extra={"path": path})
                del changed[path]
        return changed

    async def _tree_entries(self, owner: str, repo: str, changed: Dict[str, bytes]) -> List[TreeEntry]:
        entries = []
        for path, data in changed.items():
            try:
                entries.append(TreeEntry(path=path, content=data.decode("utf-8")))
            except UnicodeDecodeError:
                sha = await self.github.create_blob(owner, repo, data)
                entries.append(TreeEntry(path=path, blob_sha=sha))
        return entries

    async def commit_batch(
        self,
        owner: str,
        repo: str,
        branch: str,
        parent_sha: str,
        edits: Sequence[EditOperation],
    ) -> str:
        """Commit `edits` on top of `parent_sha` and move `branch` to the result.

        Replace edits read the branch tip, or the staged result of an earlier
        edit to the same path in this batch. Later edits win per path, and a
        path whose final content equals the branch tip is dropped.

        Returns:
            SHA of the new commit

        Raises:
            NoChange: If no edit produced a change
            GitHubError: On any remote failure
        """
        base_tree = await self.github.get_commit_tree_sha(owner, repo, parent_sha)
        view = BatchView(self.github, owner, repo, branch)
        changed = await self._evaluate(view, edits)

        if not changed:
            raise NoChange("batch produced no changes", branch=branch)

        entries = await self._tree_entries(owner, repo, changed)
        tree_sha = await self.github.create_tree(
            owner, repo, base_tree, [entry.to_github() for entry in entries]
        )
        message = commit_message(list(changed), len(edits))
        commit_sha = await self.github.create_commit(owner, repo, message, tree_sha, [parent_sha])
        await self.github.update_ref(owner, repo, branch, commit_sha, force=True)

        logger.info(
            f"Committed {len(changed)} file(s) to {branch} as {commit_sha[:7]}",
            extra={"owner": owner, "repo": repo, "branch": branch},
        )
        return commit_sha
