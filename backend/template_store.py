"""Template Store - reusable HTML/CSS/JS starter bundles."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import TEMPLATES_DIR
from errors import InvalidRequestError, NotFoundError
from id_generator import generate_id, is_valid_id

logger = logging.getLogger(__name__)


class TemplateStore:
    """Stores templates as one JSON file each."""

    def __init__(self):
        """Initialize TemplateStore with templates directory."""
        # Import dynamically to support patching in tests
        import template_store
        self._templates_dir = template_store.TEMPLATES_DIR
        self._templates_dir.mkdir(parents=True, exist_ok=True)

    def _get_template_path(self, template_id: str) -> Path:
        """Get path to template JSON file."""
        if not is_valid_id(template_id):
            raise NotFoundError("Template not found")
        return self._templates_dir / f"{template_id}.json"

    def _save_template(self, template: dict) -> None:
        """Save template to file."""
        self._get_template_path(template["id"]).write_text(json.dumps(template, indent=2))

    def _get_timestamp(self) -> str:
        """Get current ISO timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def list_templates(self, category: Optional[str] = None) -> List[dict]:
        """
        List public templates, newest first.

        Args:
            category: Only templates of this category
        """
        templates = [json.loads(path.read_text()) for path in self._templates_dir.glob("*.json")]
        templates = [t for t in templates if t.get("isPublic")]
        if category:
            templates = [t for t in templates if t.get("category") == category]
        templates.sort(key=lambda t: t.get("createdAt", ""), reverse=True)
        return templates

    def create_template(self, data: Dict[str, Any]) -> dict:
        """
        Create a template.

        Args:
            data: Template fields (name, htmlContent and category required)

        Returns:
            The stored template record
        """
        if not data.get("name") or not data.get("htmlContent") or not data.get("category"):
            raise InvalidRequestError("Name, HTML content, and category are required")

        now = self._get_timestamp()
        template = {
            "id": generate_id(),
            "name": data["name"],
            "description": data.get("description"),
            "category": data["category"],
            "thumbnail": data.get("thumbnail"),
            "htmlContent": data["htmlContent"],
            "cssContent": data.get("cssContent") or "",
            "jsContent": data.get("jsContent") or "",
            "isPublic": bool(data.get("isPublic", False)),
            "createdAt": now,
            "updatedAt": now
        }
        self._save_template(template)
        logger.info(f"Created template '{template['name']}' ({template['id']})")
        return template

    def get_template(self, template_id: str) -> dict:
        """
        Get a template by ID.

        Raises:
            NotFoundError: if no such template exists
        """
        template_path = self._get_template_path(template_id)
        if not template_path.exists():
            raise NotFoundError("Template not found")
        return json.loads(template_path.read_text())

    def find_template(self, template_id: Optional[str]) -> Optional[dict]:
        """Get a template, or None when the ID is empty or unknown."""
        if not template_id:
            return None
        try:
            return self.get_template(template_id)
        except NotFoundError:
            logger.warning(f"Template {template_id} not found")
            return None

    def update_template(self, template_id: str, changes: Dict[str, Any]) -> dict:
        """
        Update a template.

        Empty ``name``, ``category`` and ``htmlContent`` values are ignored;
        the other fields change whenever they are present.
        """
        template = self.get_template(template_id)

        for key in ("name", "category", "htmlContent"):
            if changes.get(key):
                template[key] = changes[key]
        for key in ("description", "thumbnail", "cssContent", "jsContent"):
            if key in changes and changes[key] is not None:
                template[key] = changes[key]
        if changes.get("isPublic") is not None:
            template["isPublic"] = bool(changes["isPublic"])

        template["updatedAt"] = self._get_timestamp()
        self._save_template(template)
        return template

    def delete_template(self, template_id: str) -> None:
        """Delete a template."""
        template_path = self._get_template_path(template_id)
        if not template_path.exists():
            raise NotFoundError("Template not found")
        template_path.unlink()
        logger.info(f"Deleted template {template_id}")

    def import_templates(self, path: Path) -> List[dict]:
        """
        Create templates from a JSON file holding a list of template dicts.

        Args:
            path: JSON file to read

        Returns:
            Templates created
        """
        entries = json.loads(Path(path).read_text())
        if not isinstance(entries, list):
            raise InvalidRequestError("Template file must contain a list")

        created = [self.create_template(entry) for entry in entries]
        logger.info(f"Imported {len(created)} templates from {path}")
        return created
