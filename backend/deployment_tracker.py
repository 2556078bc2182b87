"""Deployment Tracker - tracks publish runs of projects with step logging."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from config import DEPLOYMENTS_DIR, RECENT_DEPLOYMENTS_LIMIT
from id_generator import generate_id, is_valid_id

# Publish steps
PUBLISH_STEPS = [
    {"id": 1, "name": "export", "description": "Render pages and collect assets"},
    {"id": 2, "name": "upload", "description": "Upload the site to the publish bucket"},
    {"id": 3, "name": "activate", "description": "Mark the project as published"},
]


class DeploymentTracker:
    """Tracks deployment status and keeps a log of each publish run."""

    def __init__(self):
        """Initialize DeploymentTracker with deployments directory."""
        # Import dynamically to support patching in tests
        import deployment_tracker
        self._deployments_dir = deployment_tracker.DEPLOYMENTS_DIR
        self._deployments_dir.mkdir(parents=True, exist_ok=True)

    def _get_deployment_path(self, deployment_id: str) -> Path:
        """Get path to deployment JSON file."""
        return self._deployments_dir / f"{deployment_id}.json"

    def _load_deployment(self, deployment_id: str) -> Optional[dict]:
        """Load deployment state from file."""
        if not is_valid_id(deployment_id):
            return None
        deployment_path = self._get_deployment_path(deployment_id)
        if deployment_path.exists():
            return json.loads(deployment_path.read_text())
        return None

    def _save_deployment(self, state: dict) -> None:
        """Save deployment state to file."""
        self._get_deployment_path(state["id"]).write_text(json.dumps(state, indent=2))

    def _get_timestamp(self) -> str:
        """Get current ISO timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def create_deployment(self, project_id: str, user_id: str, target: str) -> str:
        """
        Create a new deployment entry.

        Args:
            project_id: Project being published
            user_id: User who started the publish
            target: Where the site goes ("s3" or "preview")

        Returns:
            deployment id
        """
        deployment_id = generate_id()
        now = self._get_timestamp()

        state = {
            "id": deployment_id,
            "projectId": project_id,
            "userId": user_id,
            "target": target,
            "status": "pending",
            "currentStep": 0,
            "totalSteps": len(PUBLISH_STEPS),
            "url": None,
            "createdAt": now,
            "updatedAt": now,
            "logs": [],
            "result": None,
            "error": None
        }

        self._save_deployment(state)
        return deployment_id

    def get_deployment(self, deployment_id: str) -> Optional[dict]:
        """Get full deployment state, or None if not found."""
        return self._load_deployment(deployment_id)

    def list_deployments(self, project_id: str, limit: int = RECENT_DEPLOYMENTS_LIMIT) -> List[dict]:
        """
        List deployments of a project, newest first.

        Args:
            project_id: Project identifier
            limit: Maximum number of deployments returned
        """
        deployments = [
            json.loads(path.read_text())
            for path in self._deployments_dir.glob("*.json")
        ]
        deployments = [d for d in deployments if d.get("projectId") == project_id]
        deployments.sort(key=lambda d: d.get("createdAt", ""), reverse=True)
        return deployments[:limit]

    def update_status(
        self,
        deployment_id: str,
        status: Optional[str] = None,
        current_step: Optional[int] = None
    ) -> None:
        """
        Update deployment status and/or current step.

        Args:
            deployment_id: Deployment identifier
            status: New status (pending|running|completed|failed)
            current_step: Current publish step number
        """
        state = self._load_deployment(deployment_id)
        if not state:
            return

        if status is not None:
            state["status"] = status
        if current_step is not None:
            state["currentStep"] = current_step

        state["updatedAt"] = self._get_timestamp()
        self._save_deployment(state)

    def log(
        self,
        deployment_id: str,
        level: str,
        message: str,
        step: Optional[int] = None,
        details: Optional[dict] = None
    ) -> None:
        """
        Add a log entry to the deployment.

        Args:
            deployment_id: Deployment identifier
            level: Log level (INFO|WARN|ERROR|DEBUG)
            message: Log message
            step: Publish step number
            details: Additional details dict
        """
        state = self._load_deployment(deployment_id)
        if not state:
            return

        step_name = None
        if step is not None and 1 <= step <= len(PUBLISH_STEPS):
            step_name = PUBLISH_STEPS[step - 1]["name"]

        state["logs"].append({
            "timestamp": self._get_timestamp(),
            "level": level,
            "message": message,
            "step": step,
            "stepName": step_name,
            "details": details
        })
        state["updatedAt"] = self._get_timestamp()
        self._save_deployment(state)

    def set_result(self, deployment_id: str, result: Any) -> None:
        """
        Set final result and mark deployment as completed.

        Args:
            deployment_id: Deployment identifier
            result: Final result data (its "url", if any, becomes the deployment url)
        """
        state = self._load_deployment(deployment_id)
        if not state:
            return

        state["result"] = result
        if isinstance(result, dict) and result.get("url"):
            state["url"] = result["url"]
        state["status"] = "completed"
        state["updatedAt"] = self._get_timestamp()
        self._save_deployment(state)

    def set_error(self, deployment_id: str, error: Any) -> None:
        """
        Set error and mark deployment as failed.

        Args:
            deployment_id: Deployment identifier
            error: Error data
        """
        state = self._load_deployment(deployment_id)
        if not state:
            return

        state["error"] = error
        state["status"] = "failed"
        state["updatedAt"] = self._get_timestamp()
        self._save_deployment(state)
