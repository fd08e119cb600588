"""Tests for the GitHub REST client."""

import pytest
import requests

from helpers import make_response, make_session
from reco_autopilot.collaborators.github import GitHubClient, parse_remote
from reco_autopilot.config.models import GitHubConfig
from reco_autopilot.utils.errors import AncestorBoundExceededError


@pytest.fixture
def github_config():
    return GitHubConfig(account="acme", token="gh-token")


@pytest.mark.parametrize("remote", [
    "git@github.com:acme/infra.git",
    "ssh://git@github.com/acme/infra.git",
    "https://github.com/acme/infra",
    "https://github.com/acme/infra.git/",
])
def test_parse_remote(remote):
    assert parse_remote(remote) == "acme/infra"


def test_parse_remote_rejects_bare_names():
    with pytest.raises(ValueError):
        parse_remote("infra")


class TestCreateReviewRequest:

    def test_opens_pull_against_default_branch(self, github_config):
        session = make_session(
            make_response(payload={"default_branch": "develop"}),
            make_response(201, {"number": 7}),
        )
        client = GitHubClient(github_config, session=session)

        client.create_review_request("git@github.com:acme/infra.git", "recommendations-1", "Recommended VM Rightsizing")

        get_call, post_call = session.request.call_args_list
        assert get_call.args == ("GET", "https://api.github.com/repos/acme/infra")
        assert post_call.args == ("POST", "https://api.github.com/repos/acme/infra/pulls")
        assert post_call.kwargs["json"]["head"] == "recommendations-1"
        assert post_call.kwargs["json"]["base"] == "develop"
        assert post_call.kwargs["json"]["title"] == "Recommended VM Rightsizing"
        assert session.headers["Authorization"] == "Bearer gh-token"

    def test_existing_pull_is_success(self, github_config):
        session = make_session(
            make_response(payload={"default_branch": "main"}),
            make_response(422, {"errors": [{"message": "A pull request already exists for acme:recommendations-1."}]}),
        )
        client = GitHubClient(github_config, session=session)

        client.create_review_request("git@github.com:acme/infra.git", "recommendations-1", "title")

    def test_other_validation_errors_propagate(self, github_config):
        session = make_session(
            make_response(payload={"default_branch": "main"}),
            make_response(422, {"errors": [{"message": "No commits between main and recommendations-1"}]}),
        )
        client = GitHubClient(github_config, session=session)

        with pytest.raises(requests.HTTPError):
            client.create_review_request("git@github.com:acme/infra.git", "recommendations-1", "title")


class TestResolveAncestors:

    def test_root_commit_covers_itself(self, github_config):
        session = make_session(make_response(payload={"sha": "abc", "parents": []}))
        client = GitHubClient(github_config, session=session)

        assert client.resolve_ancestors("acme/infra", "abc", 50) == ["abc"]
        assert session.request.call_count == 1

    def test_linear_history_follows_parents(self, github_config):
        session = make_session(
            make_response(payload={"sha": "c", "parents": [{"sha": "c1"}]}),
            make_response(payload=[{"sha": "c"}, {"sha": "c1"}, {"sha": "c2"}]),
        )
        client = GitHubClient(github_config, session=session)

        assert client.resolve_ancestors("acme/infra", "c", 50) == ["c", "c1", "c2"]

        history_call = session.request.call_args_list[1]
        assert history_call.args[1] == "https://api.github.com/repos/acme/infra/commits"
        assert history_call.kwargs["params"] == {"sha": "c", "per_page": 50, "page": 1}

    def test_linear_history_stops_at_horizon(self, github_config):
        session = make_session(
            make_response(payload={"sha": "c", "parents": [{"sha": "c1"}]}),
            make_response(payload=[{"sha": "c"}, {"sha": "c1"}]),
        )
        client = GitHubClient(github_config, session=session)

        assert client.resolve_ancestors("acme/infra", "c", 2) == ["c", "c1"]
        assert session.request.call_count == 2

    def test_linear_history_pages_past_page_size(self, github_config):
        first_page = [{"sha": f"c{i}"} for i in range(100)]
        session = make_session(
            make_response(payload={"sha": "c0", "parents": [{"sha": "c1"}]}),
            make_response(payload=first_page),
            make_response(payload=[{"sha": "c100"}, {"sha": "c101"}]),
        )
        client = GitHubClient(github_config, session=session)

        ancestors = client.resolve_ancestors("acme/infra", "c0", 150)

        assert len(ancestors) == 102
        assert ancestors[0] == "c0"
        assert ancestors[-1] == "c101"
        assert session.request.call_args_list[2].kwargs["params"]["page"] == 2

    def test_merge_commit_covers_merged_branch(self, github_config):
        session = make_session(
            make_response(payload={"sha": "m1", "parents": [{"sha": "main-1"}, {"sha": "c2"}]}),
            make_response(payload={"total_commits": 2, "commits": [{"sha": "c1"}, {"sha": "c2"}]}),
        )
        client = GitHubClient(github_config, session=session)

        assert client.resolve_ancestors("acme/infra", "m1", 50) == ["m1", "c1", "c2"]

        compare_call = session.request.call_args_list[1]
        assert compare_call.args[1] == "https://api.github.com/repos/acme/infra/compare/main-1...m1"
        assert compare_call.kwargs["params"] == {"per_page": 50}

    def test_bound_exceeded(self, github_config):
        session = make_session(
            make_response(payload={"sha": "m1", "parents": [{"sha": "a"}, {"sha": "b"}]}),
            make_response(payload={"total_commits": 51, "commits": [{"sha": "c"}] * 50}),
        )
        client = GitHubClient(github_config, session=session)

        with pytest.raises(AncestorBoundExceededError) as exc_info:
            client.resolve_ancestors("acme/infra", "m1", 50)

        assert exc_info.value.limit == 50
        assert exc_info.value.found == 51
