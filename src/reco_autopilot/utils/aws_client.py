"""boto3 session and client cache for the commit index."""

from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


def client_config(connect_timeout: float, read_timeout: float, max_pool_connections: int) -> Config:
    """botocore settings shared by every client.

    botocore makes a single attempt per call. Read paths are retried by
    RetryStrategy and writes are never replayed.
    """
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_pool_connections=max_pool_connections,
        retries={'mode': 'standard', 'max_attempts': 1},
    )


class AWSClientManager:
    """Lazily creates one boto3 session and one client per service.

    Args:
        profile: Named AWS profile, or None for the default chain
        region: Region override, or None for the profile's region
        connect_timeout: Seconds to wait for a connection
        read_timeout: Seconds to wait for a response
        max_pool_connections: Pool size; sized for concurrent commit lookups
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        connect_timeout: float = 5,
        read_timeout: float = 10,
        max_pool_connections: int = 20
    ):
        self.profile = profile
        self.region = region
        self._config = client_config(connect_timeout, read_timeout, max_pool_connections)
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[str, Any] = {}

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            options = {'profile_name': self.profile, 'region_name': self.region}
            self._session = boto3.Session(**{k: v for k, v in options.items() if v})
            logger.info(
                f"AWS session ready (profile={self.profile or 'default'}, "
                f"region={self._session.region_name})"
            )
        return self._session

    def get_client(self, service_name: str):
        """Cached client for ``service_name``, e.g. 'dynamodb'."""
        client = self._clients.get(service_name)
        if client is None:
            client = self.session.client(service_name, config=self._config)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
        return client
