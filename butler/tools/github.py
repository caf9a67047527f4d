"""GitHub API client for repository operations.

Uses the REST API v3 git-data endpoints (refs, trees, commits, blobs) so a
whole batch lands as one commit, plus the contents and pulls endpoints.
"""

import asyncio
import base64
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..core.errors import GitHubError
from ..core.logging import get_logger

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str]]

MAX_BACKOFF_SECONDS = 30.0


def _q(segment: str) -> str:
    return quote(segment, safe="/")


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        return "rate limit" in response.text.lower()
    return False


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        message = body.get("message") or response.reason_phrase
        errors = body.get("errors")
        if errors:
            details = "; ".join(
                e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors
            )
            message = f"{message}: {details}"
        return message
    return response.text


class GitHubClient:
    """Async client for GitHub REST API v3."""

    def __init__(
        self,
        token_provider: TokenProvider,
        api_url: str = "https://api.github.com",
        max_retries: int = 3,
        timeout: float = 15.0,
        backoff_base: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_provider = token_provider
        self.api_url = api_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "butler-gateway",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _backoff(self, attempt: int, response: Optional[httpx.Response]) -> float:
        wait = self.backoff_base * (2 ** attempt)
        if response is not None:
            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.isdigit():
                wait = float(retry_after)
        return min(wait, MAX_BACKOFF_SECONDS)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """Make an API request with bounded retries for rate limits and 5xx.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            GitHubError: On an error status or once retries are exhausted
        """
        token = await self.token_provider()
        headers = {"Authorization": f"Bearer {token}"}

        for attempt in range(self.max_retries + 1):
            last_attempt = attempt >= self.max_retries
            try:
                response = await self.client.request(
                    method, path, params=params, json=json, headers=headers
                )
            except httpx.TransportError as e:
                if last_attempt:
                    raise GitHubError(None, str(e) or type(e).__name__, path) from e
                wait = self._backoff(attempt, None)
                logger.warning(f"GitHub transport error on {method} {path}, retrying in {wait}s: {e}")
                await asyncio.sleep(wait)
                continue

            if response.is_success:
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()

            retryable = _is_rate_limited(response) or response.status_code >= 500
            if retryable and not last_attempt:
                wait = self._backoff(attempt, response)
                logger.warning(
                    f"GitHub {response.status_code} on {method} {path}, retrying in {wait}s..."
                )
                await asyncio.sleep(wait)
                continue

            raise GitHubError(response.status_code, _error_message(response), path)

        raise GitHubError(None, f"failed after {self.max_retries + 1} attempts", path)

    # --- refs ---

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        """Head commit SHA of a branch; raises GitHubError(404) if absent."""
        data = await self.request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{_q(branch)}")
        return data["object"]["sha"]

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )

    async def update_ref(self, owner: str, repo: str, branch: str, sha: str, force: bool = True) -> None:
        await self.request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{_q(branch)}",
            json={"sha": sha, "force": force},
        )

    # --- git data ---

    async def get_commit_tree_sha(self, owner: str, repo: str, commit_sha: str) -> str:
        data = await self.request("GET", f"/repos/{owner}/{repo}/git/commits/{commit_sha}")
        return data["tree"]["sha"]

    async def create_blob(self, owner: str, repo: str, data: bytes) -> str:
        result = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"},
        )
        return result["sha"]

    async def create_tree(self, owner: str, repo: str, base_tree: str, entries: List[Dict[str, Any]]) -> str:
        result = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json={"base_tree": base_tree, "tree": entries},
        )
        return result["sha"]

    async def create_commit(self, owner: str, repo: str, message: str, tree: str, parents: List[str]) -> str:
        result = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )
        return result["sha"]

    async def get_file(self, owner: str, repo: str, path: str, ref: str) -> Optional[bytes]:
        """Raw bytes of a file at `ref`, or None if the path is absent or not a file."""
        try:
            data = await self.request(
                "GET", f"/repos/{owner}/{repo}/contents/{_q(path)}", params={"ref": ref}
            )
        except GitHubError as e:
            if e.not_found:
                return None
            raise
        if not isinstance(data, dict) or data.get("type") != "file":
            return None
        if data.get("encoding") == "base64" and data.get("content") is not None:
            return base64.b64decode(data["content"])
        # Files over 1MB come back without inline content
        blob = await self.request("GET", f"/repos/{owner}/{repo}/git/blobs/{data['sha']}")
        return base64.b64decode(blob["content"])

    # --- pull requests ---

    async def list_pulls(self, owner: str, repo: str, head: str, base: str, state: str = "open") -> List[Dict[str, Any]]:
        return await self.request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": state, "head": f"{owner}:{head}", "base": base},
        ) or []

    async def create_pull(self, owner: str, repo: str, head: str, base: str, title: str, body: str) -> Dict[str, Any]:
        return await self.request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"head": head, "base": base, "title": title, "body": body},
        )

    async def update_pull(self, owner: str, repo: str, number: int, title: str, body: str) -> Dict[str, Any]:
        return await self.request(
            "PATCH",
            f"/repos/{owner}/{repo}/pulls/{number}",
            json={"title": title, "body": body},
        )

    async def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None:
        await self.request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels}
        )

    async def request_reviewers(self, owner: str, repo: str, number: int, reviewers: List[str]) -> None:
        await self.request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{number}/requested_reviewers",
            json={"reviewers": reviewers},
        )
