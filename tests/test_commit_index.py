"""Tests for commit record persistence."""

import json
from concurrent.futures import ThreadPoolExecutor

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from reco_autopilot.collaborators.commit_index import (
    CommitIndexError,
    CommitRecordConflictError,
    DynamoDBCommitIndex,
    FileCommitIndex,
    create_commit_index,
)
from reco_autopilot.config.models import CommitIndexConfig
from reco_autopilot.models import CommitRecord

TABLE = "reco-autopilot-commits"


def record(commit_id="c1", ids=("r1", "r2")):
    return CommitRecord(repository_name="infra", commit_id=commit_id, recommendation_ids=list(ids))


def item_for(commit_record):
    return {
        "repository_name": {"S": commit_record.repository_name},
        "commit_id": {"S": commit_record.commit_id},
        "recommendation_ids": {"L": [{"S": rid} for rid in commit_record.recommendation_ids]},
        "created_at": {"S": commit_record.created_at.isoformat()},
    }


@pytest.fixture
def dynamodb():
    client = boto3.client(
        "dynamodb",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


class TestDynamoDBCommitIndex:

    def test_put_is_conditional(self, dynamodb):
        client, stubber = dynamodb
        commit_record = record()
        stubber.add_response("put_item", {}, {
            "TableName": TABLE,
            "Item": item_for(commit_record),
            "ConditionExpression": "attribute_not_exists(commit_id)",
        })

        DynamoDBCommitIndex(TABLE, client).put_commit_record(commit_record)

    def test_get_round_trips(self, dynamodb):
        client, stubber = dynamodb
        commit_record = record()
        stubber.add_response("get_item", {"Item": item_for(commit_record)}, {
            "TableName": TABLE,
            "Key": {"repository_name": {"S": "infra"}, "commit_id": {"S": "c1"}},
            "ConsistentRead": True,
        })

        stored = DynamoDBCommitIndex(TABLE, client).get_commit_record("infra", "c1")

        assert stored.recommendation_ids == ["r1", "r2"]
        assert stored.commit_id == "c1"

    def test_get_missing(self, dynamodb):
        client, stubber = dynamodb
        stubber.add_response("get_item", {})

        assert DynamoDBCommitIndex(TABLE, client).get_commit_record("infra", "nope") is None

    def test_identical_rewrite_is_accepted(self, dynamodb):
        client, stubber = dynamodb
        commit_record = record()
        stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
        stubber.add_response("get_item", {"Item": item_for(commit_record)})

        DynamoDBCommitIndex(TABLE, client).put_commit_record(commit_record)

    def test_different_rewrite_conflicts(self, dynamodb):
        client, stubber = dynamodb
        stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
        stubber.add_response("get_item", {"Item": item_for(record(ids=("r9",)))})

        with pytest.raises(CommitRecordConflictError):
            DynamoDBCommitIndex(TABLE, client).put_commit_record(record())

    def test_other_client_errors_propagate(self, dynamodb):
        client, stubber = dynamodb
        stubber.add_client_error("put_item", service_error_code="ResourceNotFoundException")

        with pytest.raises(ClientError):
            DynamoDBCommitIndex(TABLE, client).put_commit_record(record())


class TestFileCommitIndex:

    def test_put_and_get(self, tmp_path):
        index = FileCommitIndex(str(tmp_path / "commits.json"))

        index.put_commit_record(record())

        assert index.get_commit_record("infra", "c1").recommendation_ids == ["r1", "r2"]
        assert index.get_commit_record("infra", "c2") is None
        assert not (tmp_path / "commits.tmp").exists()

    def test_write_once(self, tmp_path):
        index = FileCommitIndex(str(tmp_path / "commits.json"))
        index.put_commit_record(record())

        index.put_commit_record(record())
        with pytest.raises(CommitRecordConflictError):
            index.put_commit_record(record(ids=("r3",)))

    def test_concurrent_writers(self, tmp_path):
        index = FileCommitIndex(str(tmp_path / "commits.json"))

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(lambda n: index.put_commit_record(record(commit_id=f"c{n}")), range(20)))

        stored = json.loads((tmp_path / "commits.json").read_text())
        assert len(stored) == 20

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "commits.json"
        path.write_text("{broken")

        with pytest.raises(CommitIndexError):
            FileCommitIndex(str(path)).get_commit_record("infra", "c1")


def test_create_file_backend(tmp_path):
    index = create_commit_index(CommitIndexConfig(backend="file", path=str(tmp_path / "c.json")))
    assert isinstance(index, FileCommitIndex)
