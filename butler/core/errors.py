"""Error taxonomy shared by the gate, the GitHub services and the HTTP layer.

Every error carries a stable ``error`` discriminant and an HTTP status so the
server can render it without knowing where it was raised.
"""

from typing import Any, Dict, Optional


class ButlerError(Exception):
    """Base class for errors reported to callers."""

    error = "apply_failed"
    status_code = 500

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message and self.message != self.error:
            body["message"] = self.message
        body.update(self.details)
        return body


class Unauthorized(ButlerError):
    error = "unauthorized"
    status_code = 401


class InvalidRequest(ButlerError):
    error = "invalid"
    status_code = 400


class PathNotAllowed(ButlerError):
    error = "path_not_allowed"
    status_code = 400


class WorkflowEditBlocked(ButlerError):
    error = "workflow_edit_blocked"
    status_code = 403


class PolicyBlocked(ButlerError):
    error = "policy_block"
    status_code = 403


class BranchExists(ButlerError):
    error = "branch_exists"
    status_code = 422


class NoChange(ButlerError):
    error = "no_change"
    status_code = 400


class ApplyFailed(ButlerError):
    error = "apply_failed"
    status_code = 500


class StepFailed(ButlerError):
    error = "step_failed"
    status_code = 500


class RequestTimeout(ButlerError):
    error = "timeout"
    status_code = 504


class GitHubError(Exception):
    """A GitHub REST call returned an error status or could not be completed."""

    def __init__(self, status_code: Optional[int], message: str, path: str = ""):
        super().__init__(f"GitHub {status_code or 'request'} error on {path}: {message}")
        self.status_code = status_code
        self.message = message
        self.path = path

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    @property
    def ref_exists(self) -> bool:
        return self.status_code == 422 and "reference already exists" in self.message.lower()
