"""Change applier that delegates to external per-category commands."""

import json
import os
import subprocess
from typing import Dict, List, Sequence

from reco_autopilot.collaborators.base import ChangeApplier
from reco_autopilot.config.models import ApplierConfig
from reco_autopilot.models import Recommendation, RecommendationCategory, Workspace
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


class ApplierError(Exception):
    """Exception raised when an applier command fails or misbehaves."""

    pass


class CommandChangeApplier(ChangeApplier):
    """Runs a configured command inside the workspace for each category.

    The command receives the recommendations as a JSON array on stdin and
    must print a JSON array of the IDs it changed (or objects with an
    ``id`` key) on stdout. Recommendations it leaves out are no-ops.
    """

    def __init__(self, appliers: Dict[str, ApplierConfig]):
        """Initialize command applier.

        Args:
            appliers: Applier command per category tag
        """
        self.appliers = appliers
        self.logger = get_logger(__name__)

    def apply(
        self,
        category: RecommendationCategory,
        workspace: Workspace,
        recommendations: Sequence[Recommendation]
    ) -> List[Recommendation]:
        """Run the category's command and return the recommendations it changed."""
        applier = self.appliers.get(category.value)
        if applier is None:
            raise ApplierError(f"No applier command configured for category {category.value}")

        payload = json.dumps([r.model_dump(mode="json") for r in recommendations])
        env = dict(
            os.environ,
            AUTOPILOT_CATEGORY=category.value,
            AUTOPILOT_REPOSITORY=workspace.repository_name,
            AUTOPILOT_WORKSPACE=str(workspace.path),
        )

        self.logger.info(
            f"Running {category.value} applier on {len(recommendations)} recommendation(s) in {workspace.path}"
        )
        result = subprocess.run(
            applier.command,
            cwd=str(workspace.path),
            input=payload,
            capture_output=True,
            text=True,
            env=env,
            timeout=applier.timeout,
        )
        if result.returncode != 0:
            raise ApplierError(
                f"{category.value} applier exited with {result.returncode}: {result.stderr.strip()}"
            )

        changed_ids = self._parse_output(result.stdout)
        by_id = {r.id: r for r in recommendations}
        unknown = [rid for rid in changed_ids if rid not in by_id]
        if unknown:
            self.logger.warning(f"Applier reported unknown recommendation IDs: {unknown}")

        return [r for r in recommendations if r.id in changed_ids]

    @staticmethod
    def _parse_output(stdout: str) -> List[str]:
        try:
            data = json.loads(stdout or "[]")
        except json.JSONDecodeError as e:
            raise ApplierError(f"Applier output is not JSON: {e}")

        if not isinstance(data, list):
            raise ApplierError("Applier output must be a JSON array")

        ids = []
        for entry in data:
            if isinstance(entry, dict):
                entry = entry.get("id")
            if not isinstance(entry, str):
                raise ApplierError(f"Invalid entry in applier output: {entry!r}")
            ids.append(entry)
        return ids
