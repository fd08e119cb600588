"""Recommender REST API client."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from reco_autopilot.collaborators.base import RecommendationSource
from reco_autopilot.config.models import RecommenderConfig
from reco_autopilot.models import Recommendation, RecommendationCategory, RecommendationStatus
from reco_autopilot.utils.errors import StaleTokenError
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


# Recommender ID and accepted subtypes per category
RECOMMENDERS: Dict[RecommendationCategory, Tuple[str, Tuple[str, ...]]] = {
    RecommendationCategory.VM: (
        "google.compute.instance.MachineTypeRecommender",
        ("CHANGE_MACHINE_TYPE",),
    ),
    RecommendationCategory.IAM: (
        "google.iam.policy.Recommender",
        ("REMOVE_ROLE", "REPLACE_ROLE"),
    ),
}

STATUS_ACTIONS = {
    RecommendationStatus.CLAIMED: "markClaimed",
    RecommendationStatus.SUCCEEDED: "markSucceeded",
    RecommendationStatus.FAILED: "markFailed",
}

# Error statuses returned when the etag in a state change is not current
STALE_ETAG_STATUSES = {"FAILED_PRECONDITION", "ABORTED"}


class RecommenderClient(RecommendationSource):
    """Lists recommendations and marks them claimed, succeeded or failed."""

    def __init__(self, config: RecommenderConfig, session: Optional[requests.Session] = None):
        """Initialize recommender client.

        Args:
            config: Recommender configuration
            session: Optional requests session (one is created if omitted)
        """
        self.config = config
        self.session = session or requests.Session()
        if config.token:
            self.session.headers["Authorization"] = f"Bearer {config.token}"
        self.session.headers.setdefault("Content-Type", "application/json")
        self.logger = get_logger(__name__)

    def list(self, category: RecommendationCategory, project_ids: Sequence[str]) -> List[Recommendation]:
        """List ACTIVE recommendations of a category across projects and locations."""
        recommender_id, subtypes = RECOMMENDERS[category]
        locations = self.config.locations.get(category.value, ["global"])

        recommendations = []
        for project_id in project_ids:
            for location in locations:
                parent = f"projects/{project_id}/locations/{location}/recommenders/{recommender_id}"
                for item in self._list_parent(parent):
                    if subtypes and item.get("recommenderSubtype") not in subtypes:
                        continue
                    recommendations.append(self._to_recommendation(item, category))

        self.logger.info(
            f"Listed {len(recommendations)} {category.value} recommendations "
            f"across {len(project_ids)} project(s)"
        )
        return recommendations

    def get_fresh_tokens(self, recommendation_ids: Sequence[str]) -> List[Recommendation]:
        """Fetch each recommendation to obtain its current etag and state."""
        fresh = []
        for recommendation_id in recommendation_ids:
            item = self._request("GET", recommendation_id)
            fresh.append(self._to_recommendation(item, None))
        return fresh

    def set_status(
        self,
        recommendations: Sequence[Recommendation],
        target_status: RecommendationStatus
    ) -> None:
        """Mark each recommendation with the target status.

        Recommendations already in the target state are skipped.

        Raises:
            StaleTokenError: If the service rejects an etag
            ValueError: If the target status cannot be set by a client
        """
        action = STATUS_ACTIONS.get(target_status)
        if action is None:
            raise ValueError(f"Cannot transition recommendations to {target_status.value}")

        for recommendation in recommendations:
            if recommendation.status == target_status:
                self.logger.debug(f"{recommendation.id} already {target_status.value}, skipping")
                continue

            body = {
                "etag": recommendation.etag,
                "stateMetadata": {"updatedBy": "reco-autopilot"},
            }
            try:
                self._request("POST", f"{recommendation.id}:{action}", json=body)
            except requests.HTTPError as e:
                if self._is_stale_etag(e.response):
                    raise StaleTokenError(recommendation.id, cause=e)
                raise

            self.logger.info(f"Marked {recommendation.id} {target_status.value}")

    def _list_parent(self, parent: str):
        """Iterate over all ACTIVE recommendations under a parent, following pages."""
        params = {
            "filter": "stateInfo.state=ACTIVE",
            "pageSize": self.config.page_size,
        }
        while True:
            data = self._request("GET", f"{parent}/recommendations", params=params)
            for item in data.get("recommendations", []):
                yield item

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = dict(params, pageToken=page_token)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.config.api_url.rstrip('/')}/{path.lstrip('/')}"
        response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    @staticmethod
    def _is_stale_etag(response: Optional[requests.Response]) -> bool:
        if response is None:
            return False
        if response.status_code == 412:
            return True
        try:
            status = response.json().get("error", {}).get("status")
        except ValueError:
            return False
        return status in STALE_ETAG_STATUSES

    @staticmethod
    def _to_recommendation(
        item: Dict[str, Any],
        category: Optional[RecommendationCategory]
    ) -> Recommendation:
        """Convert an API resource into a Recommendation."""
        name = item["name"]
        parts = name.split("/")
        project_id = parts[1] if len(parts) > 1 and parts[0] == "projects" else None

        if category is None:
            for candidate, (recommender_id, _) in RECOMMENDERS.items():
                if f"/recommenders/{recommender_id}/" in name:
                    category = candidate
                    break

        state = item.get("stateInfo", {}).get("state", "ACTIVE")
        try:
            status = RecommendationStatus(state)
        except ValueError:
            status = RecommendationStatus.ACTIVE

        return Recommendation(
            id=name,
            etag=item.get("etag", ""),
            category=category,
            status=status,
            project_id=project_id,
            description=item.get("description", ""),
            content=item.get("content", {}),
        )
