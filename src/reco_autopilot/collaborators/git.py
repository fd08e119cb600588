"""Git working copy management."""

import shutil
import subprocess
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from reco_autopilot.collaborators.base import VersionControl
from reco_autopilot.collaborators.github import GitHubClient
from reco_autopilot.config.models import GitConfig, WorkspaceConfig
from reco_autopilot.models import CommitResult, Workspace
from reco_autopilot.utils.logging import get_logger

logger = get_logger(__name__)


class GitCommandError(Exception):
    """Exception raised when a git command exits non-zero."""

    def __init__(self, args: List[str], returncode: int, stderr: str):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(args)} exited with {returncode}: {self.stderr}")


class GitVersionControl(VersionControl):
    """Version control backed by the git CLI, with ancestry from the hosting API.

    Every clone gets its own directory under the workspace root, so two
    runs against the same repository never share a working tree.
    """

    def __init__(
        self,
        git_config: GitConfig,
        workspace_config: WorkspaceConfig,
        ancestry: GitHubClient,
        git_binary: str = "git"
    ):
        """Initialize git version control.

        Args:
            git_config: Git client configuration
            workspace_config: Where working copies are created
            ancestry: Client used to walk commit history remotely
            git_binary: Path to the git executable
        """
        self.git_config = git_config
        self.workspace_config = workspace_config
        self.ancestry = ancestry
        self.git_binary = git_binary
        self.logger = get_logger(__name__)

    def clone(self, remote: str, local_name: str) -> Workspace:
        """Clone ``remote`` into a new isolated directory."""
        root = Path(self.workspace_config.root)
        root.mkdir(parents=True, exist_ok=True)
        path = root / f"{local_name}-{uuid.uuid4().hex[:12]}"

        args = ["clone"]
        if self.git_config.clone_depth:
            args += ["--depth", str(self.git_config.clone_depth)]
        args += [remote, str(path)]

        self.logger.info(f"Cloning {remote} into {path}")
        self._run(args)
        return Workspace(repository_name=local_name, remote=remote, path=path)

    def commit(self, message: str, workspace: Workspace) -> CommitResult:
        """Commit all changes in the workspace on a new branch and push it."""
        branch = f"recommendations-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:6]}"

        self._run(["checkout", "-b", branch], cwd=workspace.path)
        self._run(["add", "--all"], cwd=workspace.path)
        self._run(
            [
                "-c", f"user.name={self.git_config.author_name}",
                "-c", f"user.email={self.git_config.author_email}",
                "commit", "--message", message,
            ],
            cwd=workspace.path,
        )
        commit_id = self._run(["rev-parse", "HEAD"], cwd=workspace.path).strip()

        if self.git_config.push:
            self._run(["push", "--set-upstream", "origin", branch], cwd=workspace.path)

        self.logger.info(f"Committed {commit_id} on branch {branch}")
        return CommitResult(commit_id=commit_id, branch=branch)

    def resolve_ancestors(self, full_repository_name: str, commit_id: str, limit: int) -> List[str]:
        """Delegate history traversal to the hosting API."""
        return self.ancestry.resolve_ancestors(full_repository_name, commit_id, limit)

    def discard(self, workspace: Workspace) -> None:
        """Delete the workspace directory when cleanup is enabled."""
        if not self.workspace_config.cleanup:
            return
        shutil.rmtree(workspace.path, ignore_errors=True)
        self.logger.debug(f"Removed workspace {workspace.path}")

    def _run(self, args: List[str], cwd: Optional[Path] = None) -> str:
        """Run a git command and return its stdout.

        Raises:
            GitCommandError: If git exits non-zero
            subprocess.TimeoutExpired: If git does not finish in time
        """
        result = subprocess.run(
            [self.git_binary, *args],
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=self.git_config.timeout,
        )
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout
