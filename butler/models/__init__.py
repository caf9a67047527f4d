"""Models package for Butler."""

from .change import ApplyResult, PRResult, TreeEntry
from .edits import EditOperation, ReplaceEdit, WriteEdit, sanitize_branch
from .requests import ApplyRequest, PlanRepo, PlanRequest, PlanStep, RunRequest

__all__ = [
    "ApplyResult",
    "PRResult",
    "TreeEntry",
    "EditOperation",
    "ReplaceEdit",
    "WriteEdit",
    "sanitize_branch",
    "ApplyRequest",
    "PlanRepo",
    "PlanRequest",
    "PlanStep",
    "RunRequest",
]
