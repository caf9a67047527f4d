"""Allow-list gate for repository write paths.

Patterns are glob-like: ``**`` matches any number of directories (including
none), ``*`` matches a run of characters within one path segment, and every
other character is literal. Workflow paths are always writable in principle
but require a separate approval credential on every request.
"""

from __future__ import annotations

import hmac
import re
from typing import Iterable, List, Optional, Pattern, Sequence

from ..core.errors import PathNotAllowed, WorkflowEditBlocked
from ..core.logging import get_logger

logger = get_logger(__name__)

WORKFLOW_PATTERNS = [".github/workflows/**"]


def normalize_path(path: str) -> str:
    """Use forward slashes and drop leading ``./`` segments."""
    p = path.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    return p


def compile_glob(pattern: str) -> Pattern[str]:
    """Translate a glob-like pattern into an anchored regular expression."""
    pattern = normalize_path(pattern)
    out: List[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + r"\Z", re.DOTALL)


def _is_safe(path: str) -> bool:
    if not path or path.startswith("/"):
        return False
    return ".." not in path.split("/")


class PathGate:
    """Classifies candidate write paths against configured patterns."""

    def __init__(
        self,
        allow_patterns: Iterable[str],
        workflow_patterns: Iterable[str] = WORKFLOW_PATTERNS,
        workflow_key: Optional[str] = None,
    ):
        self.allow_patterns = list(allow_patterns)
        self.workflow_patterns = list(workflow_patterns)
        self._allow = [compile_glob(p) for p in self.allow_patterns]
        self._workflow = [compile_glob(p) for p in self.workflow_patterns]
        self._workflow_key = workflow_key

    def is_workflow_path(self, path: str) -> bool:
        p = normalize_path(path)
        return _is_safe(p) and any(rx.fullmatch(p) for rx in self._workflow)

    def is_allowed(self, path: str) -> bool:
        p = normalize_path(path)
        if not _is_safe(p):
            return False
        return any(rx.fullmatch(p) for rx in self._allow) or self.is_workflow_path(p)

    def workflow_approved(self, approval: Optional[str]) -> bool:
        """True when the caller's approval header matches the server key."""
        if not self._workflow_key or not approval:
            return False
        return hmac.compare_digest(approval.encode("utf-8"), self._workflow_key.encode("utf-8"))

    def check(self, paths: Sequence[str], approval: Optional[str] = None) -> None:
        """Raise if any path is blocked.

        Workflow paths are checked first so a missing approval is reported as
        ``workflow_edit_blocked`` even when other paths are also disallowed.

        Raises:
            WorkflowEditBlocked: a workflow path without a matching approval
            PathNotAllowed: a path outside the allow list
        """
        for path in paths:
            if self.is_workflow_path(path) and not self.workflow_approved(approval):
                logger.warning("Blocked workflow edit", extra={"path": path})
                raise WorkflowEditBlocked(
                    "workflow edits require approval",
                    path=path,
                    hint="send X-Butler-Approve-Workflows header matching WORKFLOW_EDIT_KEY",
                )
        for path in paths:
            if not self.is_allowed(path):
                logger.warning("Blocked disallowed path", extra={"path": path})
                raise PathNotAllowed(f"path not allowed: {path}", path=path)
