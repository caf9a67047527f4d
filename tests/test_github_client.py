"""Tests for the async GitHub REST client."""

import base64
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from butler.core.errors import GitHubError
from butler.tools.github import GitHubClient


async def _token():
    return "ghs_test"


def _client(handler, **kwargs):
    kwargs.setdefault("backoff_base", 0)
    return GitHubClient(_token, transport=httpx.MockTransport(handler), **kwargs)


class TestGitHubClient:
    """Tests for GitHubClient requests and error handling."""

    @pytest.mark.asyncio
    async def test_sends_auth_and_parses_ref(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"object": {"sha": "abc"}})

        async with _client(handler) as gh:
            sha = await gh.get_branch_sha("acme", "widgets", "feature/x")
        assert sha == "abc"
        assert seen["auth"] == "Bearer ghs_test"
        assert seen["path"] == "/repos/acme/widgets/git/ref/heads/feature/x"

    @pytest.mark.asyncio
    async def test_error_status_raises_github_error(self):
        def handler(request):
            return httpx.Response(
                422,
                json={"message": "Reference already exists", "errors": []},
            )

        async with _client(handler) as gh:
            with pytest.raises(GitHubError) as exc_info:
                await gh.create_ref("acme", "widgets", "x", "abc")
        assert exc_info.value.status_code == 422
        assert exc_info.value.ref_exists

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self):
        responses = iter([
            httpx.Response(429, json={"message": "slow down"}),
            httpx.Response(403, headers={"X-RateLimit-Remaining": "0"}, json={"message": "API rate limit exceeded"}),
            httpx.Response(200, json={"tree": {"sha": "tree1"}}),
        ])

        async with _client(lambda request: next(responses)) as gh:
            assert await gh.get_commit_tree_sha("acme", "widgets", "abc") == "tree1"

    @pytest.mark.asyncio
    async def test_retry_after_header_is_honoured(self):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "2"}, json={"message": "slow down"}),
            httpx.Response(200, json={"tree": {"sha": "tree1"}}),
        ])
        with patch("butler.tools.github.asyncio.sleep", new=AsyncMock()) as sleep:
            async with _client(lambda request: next(responses), backoff_base=1.0) as gh:
                await gh.get_commit_tree_sha("acme", "widgets", "abc")
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"message": "slow down"})

        async with _client(handler, max_retries=2) as gh:
            with pytest.raises(GitHubError) as exc_info:
                await gh.get_commit_tree_sha("acme", "widgets", "abc")
        assert exc_info.value.status_code == 429
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_plain_forbidden_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(403, json={"message": "Resource not accessible by integration"})

        async with _client(handler) as gh:
            with pytest.raises(GitHubError):
                await gh.list_pulls("acme", "widgets", "x", "main")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_get_file_decodes_content(self):
        def handler(request):
            assert request.url.params["ref"] == "feature/x"
            return httpx.Response(200, json={
                "type": "file",
                "encoding": "base64",
                "content": base64.b64encode(b"foo foo\n").decode(),
                "sha": "blob1",
            })

        async with _client(handler) as gh:
            assert await gh.get_file("acme", "widgets", "README.md", "feature/x") == b"foo foo\n"

    @pytest.mark.asyncio
    async def test_get_file_missing_or_directory_is_none(self):
        def handler(request):
            if request.url.path.endswith("/missing.txt"):
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=[{"type": "file", "path": "src/a.py"}])

        async with _client(handler) as gh:
            assert await gh.get_file("acme", "widgets", "missing.txt", "main") is None
            assert await gh.get_file("acme", "widgets", "src", "main") is None

    @pytest.mark.asyncio
    async def test_get_file_large_file_falls_back_to_blob(self):
        def handler(request):
            if "/git/blobs/" in request.url.path:
                return httpx.Response(200, json={"content": base64.b64encode(b"big").decode(), "encoding": "base64"})
            return httpx.Response(200, json={"type": "file", "encoding": "none", "content": "", "sha": "blob1"})

        async with _client(handler) as gh:
            assert await gh.get_file("acme", "widgets", "big.bin", "main") == b"big"

    @pytest.mark.asyncio
    async def test_update_ref_forces(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            assert request.method == "PATCH"
            return httpx.Response(200, json={"ref": "refs/heads/x"})

        async with _client(handler) as gh:
            await gh.update_ref("acme", "widgets", "x", "c0ffee")
        assert bodies == [{"sha": "c0ffee", "force": True}]

    @pytest.mark.asyncio
    async def test_list_pulls_filters_by_owner_head(self):
        def handler(request):
            assert request.url.params["head"] == "acme:feature/x"
            assert request.url.params["base"] == "main"
            assert request.url.params["state"] == "open"
            return httpx.Response(200, json=[])

        async with _client(handler) as gh:
            assert await gh.list_pulls("acme", "widgets", "feature/x", "main") == []

    @pytest.mark.asyncio
    async def test_transport_errors_surface_as_github_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        async with _client(handler, max_retries=1) as gh:
            with pytest.raises(GitHubError) as exc_info:
                await gh.get_branch_sha("acme", "widgets", "main")
        assert exc_info.value.status_code is None
