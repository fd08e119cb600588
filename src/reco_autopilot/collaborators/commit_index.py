"""Commit record persistence backends."""

import fcntl
import json
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from reco_autopilot.collaborators.base import CommitIndex
from reco_autopilot.config.models import CommitIndexConfig
from reco_autopilot.models import CommitRecord
from reco_autopilot.utils.aws_client import AWSClientManager
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


class CommitIndexError(Exception):
    """Base exception for commit index errors."""

    pass


class CommitRecordConflictError(CommitIndexError):
    """A different record already exists for the same commit."""

    pass


class DynamoDBCommitIndex(CommitIndex):
    """Commit records in a DynamoDB table keyed by repository and commit."""

    def __init__(self, table_name: str, dynamodb_client):
        """Initialize DynamoDB commit index.

        Args:
            table_name: Table with hash key ``repository_name`` and range key ``commit_id``
            dynamodb_client: boto3 DynamoDB client
        """
        self.table_name = table_name
        self.client = dynamodb_client
        self.logger = get_logger(__name__)

    def put_commit_record(self, record: CommitRecord) -> None:
        """Write a record once; rewriting an identical record is a no-op.

        Raises:
            CommitRecordConflictError: If the commit already has different IDs
        """
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=self._to_item(record),
                ConditionExpression="attribute_not_exists(commit_id)",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            existing = self.get_commit_record(record.repository_name, record.commit_id)
            if existing is None or existing.recommendation_ids != record.recommendation_ids:
                raise CommitRecordConflictError(
                    f"Commit {record.commit_id} in {record.repository_name} already has a different record"
                )
            self.logger.info(f"Commit record for {record.commit_id} already stored")
            return

        self.logger.info(
            f"Stored commit record {record.repository_name}@{record.commit_id} "
            f"with {len(record.recommendation_ids)} recommendation(s)"
        )

    def get_commit_record(self, repository_name: str, commit_id: str) -> Optional[CommitRecord]:
        """Read a record with a strongly consistent get."""
        response = self.client.get_item(
            TableName=self.table_name,
            Key={
                "repository_name": {"S": repository_name},
                "commit_id": {"S": commit_id},
            },
            ConsistentRead=True,
        )
        item = response.get("Item")
        if not item:
            return None
        return self._from_item(item)

    @staticmethod
    def _to_item(record: CommitRecord) -> Dict[str, Any]:
        return {
            "repository_name": {"S": record.repository_name},
            "commit_id": {"S": record.commit_id},
            # Stored as a list to keep claim order
            "recommendation_ids": {"L": [{"S": rid} for rid in record.recommendation_ids]},
            "created_at": {"S": record.created_at.isoformat()},
        }

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> CommitRecord:
        return CommitRecord(
            repository_name=item["repository_name"]["S"],
            commit_id=item["commit_id"]["S"],
            recommendation_ids=[value["S"] for value in item.get("recommendation_ids", {}).get("L", [])],
            created_at=datetime.fromisoformat(item["created_at"]["S"]) if "created_at" in item else datetime.utcnow(),
        )


class FileCommitIndex(CommitIndex):
    """Commit records in a local JSON file, for development and single-host use."""

    def __init__(self, path: str, lock_timeout: int = 30):
        """Initialize file commit index.

        Args:
            path: Path to the JSON file
            lock_timeout: Seconds to wait for the file lock
        """
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self.logger = get_logger(__name__)

    def put_commit_record(self, record: CommitRecord) -> None:
        """Write a record once under an exclusive lock.

        Raises:
            CommitRecordConflictError: If the commit already has different IDs
        """
        key = self._key(record.repository_name, record.commit_id)
        lock_fd = self._lock()
        try:
            records = self._read()
            existing = records.get(key)
            if existing is not None:
                if existing.get("recommendation_ids") != record.recommendation_ids:
                    raise CommitRecordConflictError(
                        f"Commit {record.commit_id} in {record.repository_name} already has a different record"
                    )
                return

            records[key] = record.to_dict()
            self._write(records)
        finally:
            self._unlock(lock_fd)

        self.logger.info(f"Stored commit record {key}")

    def get_commit_record(self, repository_name: str, commit_id: str) -> Optional[CommitRecord]:
        """Read a record; the file is replaced atomically so no lock is needed."""
        data = self._read().get(self._key(repository_name, commit_id))
        return CommitRecord.from_dict(data) if data else None

    @staticmethod
    def _key(repository_name: str, commit_id: str) -> str:
        return f"{repository_name}@{commit_id}"

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise CommitIndexError(f"Failed to parse commit index {self.path}: {e}")

    def _write(self, records: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(records, f, indent=2)

        # Atomic rename
        temp_path.replace(self.path)

    def _lock(self) -> int:
        lock_path = self.path.with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR)

        start_time = time.time()
        while True:
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return lock_fd
            except BlockingIOError:
                if time.time() - start_time > self.lock_timeout:
                    os.close(lock_fd)
                    raise CommitIndexError(
                        f"Failed to acquire lock on {self.path} after {self.lock_timeout}s"
                    )
                time.sleep(0.05)

    @staticmethod
    def _unlock(lock_fd: int) -> None:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
        finally:
            os.close(lock_fd)


def create_commit_index(config: CommitIndexConfig) -> CommitIndex:
    """Build the configured commit index backend."""
    if config.backend == "file":
        return FileCommitIndex(config.path)

    client_manager = AWSClientManager(profile=config.profile, region=config.region)
    return DynamoDBCommitIndex(config.table_name, client_manager.get_client("dynamodb"))
