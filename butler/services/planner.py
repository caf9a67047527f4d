"""Plan skeletons for POST /plan. Makes no remote calls."""

from __future__ import annotations

import hashlib
import re
from typing import Any, Dict

from ..core.config import AppConfig
from ..models import PlanRequest

_SLUG_INVALID = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")

TITLE_MAX = 72
BRANCH_SLUG_MAX = 40


def slugify(value: str, *, fallback: str = "change", max_length: int = BRANCH_SLUG_MAX) -> str:
    """Lowercase ref-safe slug; long values keep a hash suffix so they stay distinct."""
    slug = _SLUG_INVALID.sub("-", (value or "").strip().lower())
    slug = _HYPHEN_COLLAPSE.sub("-", slug).strip("-.") or fallback
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-.")
    return f"{prefix}-{digest}"


def _title(goal: str) -> str:
    lines = goal.strip().splitlines()
    if not lines:
        return "Butler change"
    first_line = lines[0].strip()
    if len(first_line) <= TITLE_MAX:
        return first_line
    return first_line[: TITLE_MAX - 3].rstrip() + "..."


def build_plan(request: PlanRequest, config: AppConfig) -> Dict[str, Any]:
    """Build the non-mutating plan skeleton plus the enforcement /apply will apply."""
    return {
        "title": _title(request.goal),
        "summary": request.goal.strip(),
        "repo": {"owner": request.repo.owner, "name": request.repo.name},
        "baseBranch": request.base_branch,
        "branch": f"butler/{slugify(request.goal)}",
        "labels": ["butler"],
        "edits": [],
        "hints": {
            "auth": "send X-Butler-Token on /apply",
            "allowPatterns": list(config.gate.allow_patterns),
            "workflowPaths": {
                "patterns": list(config.gate.workflow_patterns),
                "requires": "X-Butler-Approve-Workflows header matching WORKFLOW_EDIT_KEY",
            },
            "branchStrategies": {
                "create": "default; fails with 422 branch_exists if the branch exists",
                "reuse": "commit on the existing branch, creating it from baseBranch if missing",
            },
            "edits": [
                {"op": "write", "path": "src/...", "content": "...", "mode": "create|overwrite|append", "encoding": "utf8|base64"},
                {"op": "replace", "path": "src/...", "search": "...", "replace": "...", "all": True, "isRegex": False},
            ],
            "noChange": "a batch whose edits change nothing returns 400 no_change",
        },
    }
