"""GitHub REST client for pull requests and commit ancestry."""

import re
from typing import Any, List, Optional

import requests

from reco_autopilot.collaborators.base import ReviewSystem
from reco_autopilot.config.models import GitHubConfig
from reco_autopilot.utils.errors import AncestorBoundExceededError
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)

# git@host:owner/repo.git, ssh://git@host/owner/repo.git, https://host/owner/repo(.git)
REMOTE_PATTERN = re.compile(r"(?:[:/])(?P<owner>[^/:]+)/(?P<repo>[^/]+?)(?:\.git)?/?$")

# Largest page the commits endpoint returns
MAX_PAGE_SIZE = 100


def parse_remote(remote: str) -> str:
    """Extract ``owner/repo`` from a remote address.

    Raises:
        ValueError: If the address has no owner/repo suffix
    """
    match = REMOTE_PATTERN.search(remote)
    if not match:
        raise ValueError(f"Cannot determine repository from remote: {remote}")
    return f"{match.group('owner')}/{match.group('repo')}"


class GitHubClient(ReviewSystem):
    """Opens pull requests and resolves which commits a build covered."""

    def __init__(self, config: GitHubConfig, session: Optional[requests.Session] = None):
        """Initialize GitHub client.

        Args:
            config: GitHub configuration
            session: Optional requests session (one is created if omitted)
        """
        self.config = config
        self.session = session or requests.Session()
        self.session.headers["Accept"] = "application/vnd.github+json"
        if config.token:
            self.session.headers["Authorization"] = f"Bearer {config.token}"
        self.logger = get_logger(__name__)

    def create_review_request(self, remote: str, branch: str, title: str) -> None:
        """Open a pull request from ``branch`` into the default branch.

        An already-open pull request for the same branch counts as success.
        """
        full_name = parse_remote(remote)
        repository = self._request("GET", f"repos/{full_name}")
        base = repository.get("default_branch", "main")

        body = {
            "title": title,
            "head": branch,
            "base": base,
            "body": f"{title}\n\nGenerated from pending recommendations.",
        }
        try:
            pull = self._request("POST", f"repos/{full_name}/pulls", json=body)
        except requests.HTTPError as e:
            if self._is_duplicate_pull(e.response):
                self.logger.info(f"Pull request for {branch} already exists in {full_name}")
                return
            raise

        self.logger.info(f"Opened pull request #{pull.get('number')} for {branch} in {full_name}")

    def resolve_ancestors(self, full_repository_name: str, commit_id: str, limit: int) -> List[str]:
        """Commits a build of ``commit_id`` covers, newest first.

        A merge commit covers itself plus every commit reachable from the
        merged parents but not from the first parent; more than ``limit`` of
        those is an error. Any other commit covers the history reachable by
        following parent links backward, cut off after ``limit`` commits.

        Raises:
            AncestorBoundExceededError: If a merge brings in more than ``limit`` commits
        """
        commit = self._request("GET", f"repos/{full_repository_name}/commits/{commit_id}")
        parents = commit.get("parents", [])
        if not parents:
            return [commit_id]
        if len(parents) == 1:
            return self._walk_history(full_repository_name, commit_id, limit)

        first_parent = parents[0]["sha"]
        comparison = self._request(
            "GET",
            f"repos/{full_repository_name}/compare/{first_parent}...{commit_id}",
            params={"per_page": limit},
        )
        total = comparison.get("total_commits", len(comparison.get("commits", [])))
        if total > limit:
            raise AncestorBoundExceededError(commit_id, limit, total)

        shas = [c["sha"] for c in comparison.get("commits", [])]
        ancestors = list(dict.fromkeys([commit_id] + shas))
        self.logger.debug(f"Merge commit {commit_id} covers {len(ancestors)} commit(s)")
        return ancestors

    def _walk_history(self, full_repository_name: str, commit_id: str, limit: int) -> List[str]:
        """Up to ``limit`` commits reachable from ``commit_id``, starting with it."""
        per_page = min(limit, MAX_PAGE_SIZE)
        shas = [commit_id]
        page = 1
        while True:
            commits = self._request(
                "GET",
                f"repos/{full_repository_name}/commits",
                params={"sha": commit_id, "per_page": per_page, "page": page},
            )
            shas.extend(c["sha"] for c in commits)
            ancestors = list(dict.fromkeys(shas))
            if len(ancestors) >= limit or len(commits) < per_page:
                break
            page += 1

        if len(ancestors) >= limit:
            self.logger.info(f"History walk from {commit_id} stopped at the horizon of {limit} commit(s)")
        ancestors = ancestors[:limit]
        self.logger.debug(f"Commit {commit_id} reaches {len(ancestors)} commit(s)")
        return ancestors

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.config.api_url.rstrip('/')}/{path}"
        response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    @staticmethod
    def _is_duplicate_pull(response: Optional[requests.Response]) -> bool:
        if response is None or response.status_code != 422:
            return False
        try:
            errors = response.json().get("errors", [])
        except ValueError:
            return False
        return any("already exists" in (error.get("message") or "") for error in errors)
