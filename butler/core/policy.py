"""Tool policy decision engine for the /run surface.

A policy maps a repo key to per-tool allow/deny lists. Lookups fall back to
the ``default`` repo rule; anything not explicitly allowed is denied.
"""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from .logging import get_logger

logger = get_logger(__name__)


class ToolRule(BaseModel):
    """Allowed and denied actions for one tool."""

    allow: List[str] = Field(default_factory=list)
    deny: List[str] = Field(default_factory=list)


class RepoRule(BaseModel):
    """Policy for one repo key."""

    tools: Dict[str, ToolRule] = Field(default_factory=dict)
    paths_allow: List[str] = Field(default_factory=list)


class Policy(BaseModel):
    version: int = 1
    repos: Dict[str, RepoRule] = Field(default_factory=dict)


DEFAULT_POLICY = {
    "version": 1,
    "repos": {
        "default": {
            "tools": {
                "github": {"allow": ["read_file", "write_file", "open_pr", "create_branch"]},
                "supabase": {
                    "allow": ["deploy_function", "set_function_env", "invoke_rpc", "sql_migrate:staging"],
                    "deny": ["sql_migrate:prod"],
                },
                "stripe": {"allow": ["read_connect_account:test"]},
                "deploy": {"allow": ["create_preview"]},
                "email": {"allow": ["send_test"]},
            },
            "paths_allow": ["src/**", "supabase/**", ".github/**", "package.json", "tsconfig.json"],
        }
    },
}


def load_policy(policy_path: Optional[str] = None) -> Policy:
    """Load the policy, read fresh on every call.

    Args:
        policy_path: YAML policy file; the built-in default is used when unset

    Returns:
        Parsed policy
    """
    if policy_path:
        path = Path(policy_path)
        if path.exists():
            with open(path, "r") as f:
                return Policy(**(yaml.safe_load(f) or {}))
        logger.warning(f"Policy file {policy_path} not found, using built-in default")
    return Policy(**DEFAULT_POLICY)


def is_allowed(policy: Policy, repo: str, tool: str, action: str, env: str = "staging") -> bool:
    """Decide whether `tool.action` may run in `env`.

    Rules:
        - the repo rule falls back to ``default``; no rule at all denies
        - unknown tools are denied
        - ``sql_migrate`` actions are looked up as ``action:env``
        - a deny entry wins over an allow entry
    """
    rule = policy.repos.get(repo) or policy.repos.get("default")
    if rule is None:
        return False
    tool_rule = rule.tools.get(tool)
    if tool_rule is None:
        return False

    key = f"{action}:{env}" if env and "sql_migrate" in action else action
    if any(entry in (key, action) for entry in tool_rule.deny):
        return False
    return any(entry in (key, action) for entry in tool_rule.allow)
