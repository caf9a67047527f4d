"""Policy-gated executor for multi-step /run plans."""

import asyncio
from typing import Any, Dict, List, Optional

from ..core.config import AppConfig
from ..core.errors import ButlerError, GitHubError, InvalidRequest, PolicyBlocked, StepFailed
from ..core.logging import get_logger, redact_sensitive
from ..core.policy import is_allowed, load_policy
from ..models import RunRequest, WriteEdit, sanitize_branch
from ..tools.github import GitHubClient
from ..tools.path_gate import PathGate
from .apply import resolve_repo
from .branches import BranchResolver
from .committer import BatchCommitter
from .pull_requests import PRReconciler

logger = get_logger(__name__)

ARG_PREVIEW_CHARS = 200


def _loggable_args(args: Dict[str, Any]) -> Dict[str, Any]:
    clipped = {
        k: v[:ARG_PREVIEW_CHARS] + "..." if isinstance(v, str) and len(v) > ARG_PREVIEW_CHARS else v
        for k, v in args.items()
    }
    return redact_sensitive(clipped)


def _require(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequest(f"missing argument '{key}'")
    return value


class RunExecutor:
    """Executes plan steps in order, stopping at the first blocked or failed step."""

    def __init__(self, config: AppConfig, github: GitHubClient, gate: PathGate):
        self.config = config
        self.github = github
        self.gate = gate
        self.branches = BranchResolver(github)
        self.committer = BatchCommitter(github)
        self.pull_requests = PRReconciler(github)

    async def run(self, request: RunRequest, workflow_approval: Optional[str] = None) -> Dict[str, Any]:
        policy = await asyncio.to_thread(load_policy, self.config.gate.policy_path)
        results: List[Dict[str, Any]] = []

        for step in request.steps:
            tool, action = step.tool_name, step.action
            if not is_allowed(policy, request.repo, tool, action, request.env):
                logger.warning(
                    f"Policy blocked {tool}.{action} in {request.env}",
                    extra={"tool": tool, "action": action},
                )
                raise PolicyBlocked(tool=tool, action=action, env=request.env)

            if request.dry_run:
                results.append({"tool": tool, "action": action, "ok": True, "dryRun": True})
                continue

            logger.info(
                f"Running step {tool}.{action}",
                extra={"tool": tool, "action": action, "step_args": _loggable_args(step.args)},
            )
            try:
                out = await self._dispatch(tool, action, step.args, request, workflow_approval)
            except (ButlerError, GitHubError) as e:
                message = redact_sensitive(f"{e.error}: {e.message}" if isinstance(e, ButlerError) else str(e))
                results.append({"tool": tool, "action": action, "ok": False, "error": message})
                raise StepFailed(message, tool=tool, action=action, results=results) from e
            results.append({"tool": tool, "action": action, "ok": True, "out": out})

        return {"ok": True, "results": results}

    async def _dispatch(
        self,
        tool: str,
        action: str,
        args: Dict[str, Any],
        request: RunRequest,
        workflow_approval: Optional[str],
    ) -> Dict[str, Any]:
        if tool != "github":
            raise InvalidRequest(f"unknown_tool_or_action: {tool}.{action}")

        owner, repo = resolve_repo(self.config, args.get("owner"), args.get("repo"))

        if action == "create_branch":
            name = sanitize_branch(args.get("name") or request.branch)
            if not name:
                raise InvalidRequest("missing argument 'name'")
            sha = await self.branches.create_branch(owner, repo, name, args.get("from") or "main")
            return {"ok": True, "branch": name, "sha": sha}

        if action == "write_file":
            path = _require(args, "path")
            content = args.get("content")
            if not isinstance(content, str):
                raise InvalidRequest("missing argument 'content'")
            self.gate.check([path], workflow_approval)
            try:
                edit = WriteEdit(
                    path=path,
                    content=content,
                    mode=args.get("mode") or "overwrite",
                    encoding=args.get("encoding") or "utf8",
                )
            except ValueError as e:
                raise InvalidRequest(str(e))
            branch = sanitize_branch(args.get("branch") or request.branch)
            head = await self.branches.resolve_head(
                owner, repo, branch, args.get("base") or "main", strategy="reuse"
            )
            sha = await self.committer.commit_batch(owner, repo, branch, head, [edit])
            return {"ok": True, "commit": sha}

        if action == "open_pr":
            pr = await self.pull_requests.reconcile_pr(
                owner,
                repo,
                head=args.get("head") or request.branch,
                base=args.get("base") or "main",
                title=_require(args, "title"),
                body=args.get("body") or "",
                labels=args.get("labels"),
                reviewers=args.get("reviewers"),
            )
            return pr.model_dump()

        if action == "read_file":
            path = _require(args, "path")
            data = await self.github.get_file(owner, repo, path, args.get("ref") or "main")
            content = data.decode("utf-8", errors="replace") if data is not None else None
            return {"path": path, "exists": data is not None, "content": content}

        raise InvalidRequest(f"unknown_tool_or_action: {tool}.{action}")
