"""Shared fixtures: an in-memory GitHub that speaks the GitHubClient surface."""

import asyncio
import hashlib
import itertools
from typing import Dict, List, Optional

import pytest

from butler.core.config import AppConfig
from butler.core.errors import GitHubError


class FakeGitHub:
    """In-memory stand-in for GitHubClient backed by dict trees and commits."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.refs: Dict[str, str] = {}
        self.trees: Dict[str, Dict[str, bytes]] = {}
        self.commits: Dict[str, dict] = {}
        self.blobs: Dict[str, bytes] = {}
        self.pulls: List[dict] = []
        self.calls: List[str] = []
        self.fail_list_pulls = False
        self.fail_labels = False
        self.fail_reviewers = False
        self.fail_lookup_status: Optional[int] = None
        self.delay = 0.0

    # --- helpers for tests ---

    def _sha(self, prefix: str) -> str:
        return hashlib.sha1(f"{prefix}-{next(self._ids)}".encode()).hexdigest()

    def seed(self, branch: str = "main", files: Optional[Dict[str, str]] = None) -> str:
        tree = self._sha("tree")
        self.trees[tree] = {p: c.encode("utf-8") for p, c in (files or {}).items()}
        sha = self._sha("commit")
        self.commits[sha] = {"tree": tree, "parents": [], "message": "seed"}
        self.refs[branch] = sha
        return sha

    def files_at(self, ref: str) -> Dict[str, bytes]:
        sha = self.refs.get(ref, ref)
        return self.trees[self.commits[sha]["tree"]]

    def text_at(self, ref: str, path: str) -> str:
        return self.files_at(ref)[path].decode("utf-8")

    @property
    def mutations(self) -> List[str]:
        mutating = {"create_ref", "update_ref", "create_blob", "create_tree", "create_commit",
                    "create_pull", "update_pull", "add_labels", "request_reviewers"}
        return [c for c in self.calls if c in mutating]

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(self.delay)

    # --- client surface ---

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def get_branch_sha(self, owner, repo, branch):
        await self._step("get_branch_sha")
        if self.fail_lookup_status and branch not in self.refs:
            raise GitHubError(self.fail_lookup_status, "Server Error", f"git/ref/heads/{branch}")
        if branch not in self.refs:
            raise GitHubError(404, "Not Found", f"git/ref/heads/{branch}")
        return self.refs[branch]

    async def create_ref(self, owner, repo, branch, sha):
        await self._step("create_ref")
        if branch in self.refs:
            raise GitHubError(422, "Reference already exists", "git/refs")
        self.refs[branch] = sha

    async def update_ref(self, owner, repo, branch, sha, force=True):
        await self._step("update_ref")
        self.refs[branch] = sha

    async def get_commit_tree_sha(self, owner, repo, commit_sha):
        await self._step("get_commit_tree_sha")
        return self.commits[commit_sha]["tree"]

    async def create_blob(self, owner, repo, data):
        await self._step("create_blob")
        sha = self._sha("blob")
        self.blobs[sha] = data
        return sha

    async def create_tree(self, owner, repo, base_tree, entries):
        await self._step("create_tree")
        files = dict(self.trees[base_tree])
        for entry in entries:
            if "sha" in entry:
                files[entry["path"]] = self.blobs[entry["sha"]]
            else:
                files[entry["path"]] = entry["content"].encode("utf-8")
        sha = self._sha("tree")
        self.trees[sha] = files
        return sha

    async def create_commit(self, owner, repo, message, tree, parents):
        await self._step("create_commit")
        sha = self._sha("commit")
        self.commits[sha] = {"tree": tree, "parents": list(parents), "message": message}
        return sha

    async def get_file(self, owner, repo, path, ref):
        await self._step("get_file")
        files = self.files_at(ref)
        if path in files:
            return files[path]
        return None

    async def list_pulls(self, owner, repo, head, base, state="open"):
        await self._step("list_pulls")
        if self.fail_list_pulls:
            raise GitHubError(403, "Resource not accessible by integration", "pulls")
        return [p for p in self.pulls if p["head"] == head and p["base"] == base and p["state"] == "open"]

    async def create_pull(self, owner, repo, head, base, title, body):
        await self._step("create_pull")
        number = len(self.pulls) + 1
        pr = {
            "number": number,
            "head": head,
            "base": base,
            "title": title,
            "body": body,
            "state": "open",
            "labels": [],
            "reviewers": [],
            "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
        }
        self.pulls.append(pr)
        return pr

    async def update_pull(self, owner, repo, number, title, body):
        await self._step("update_pull")
        pr = self.pulls[number - 1]
        pr.update(title=title, body=body)
        return pr

    async def add_labels(self, owner, repo, number, labels):
        await self._step("add_labels")
        if self.fail_labels:
            raise GitHubError(422, "Validation Failed", "labels")
        self.pulls[number - 1]["labels"].extend(labels)

    async def request_reviewers(self, owner, repo, number, reviewers):
        await self._step("request_reviewers")
        if self.fail_reviewers:
            raise GitHubError(422, "Reviews may only be requested from collaborators", "requested_reviewers")
        self.pulls[number - 1]["reviewers"].extend(reviewers)


@pytest.fixture
def github():
    """Fake GitHub with a seeded main branch."""
    gh = FakeGitHub()
    gh.seed("main", {
        "README.md": "foo foo\n",
        "src/app.py": "print('hello')\n",
        "src/pkg/mod.py": "VALUE = 1\n",
    })
    return gh


@pytest.fixture
def config():
    return AppConfig(
        github={"token": "ghs_test", "default_owner": "acme", "default_repo": "widgets"},
        security={"butler_token": "s3cret", "workflow_edit_key": "wf-key"},
        gate={"allow_patterns": ["src/**", "README.md", "docs/*.md"]},
        server={"request_timeout_seconds": 5, "revision": "abc1234"},
    )
