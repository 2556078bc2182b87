"""Project Store - user-owned projects, their members and home page seeding."""

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from access import can_edit, can_view, is_owner
from config import PROJECTS_DIR, PROJECT_FILE
from errors import InvalidRequestError, NotFoundError
from id_generator import generate_id, is_valid_id, slugify, unique_slug
from models import MemberRole, ProjectStatus
from page_store import HOME_PAGE_SLUG, PageStore

logger = logging.getLogger(__name__)

# Fields a client may change on a project
PROJECT_FIELDS = ["name", "description", "domain", "status", "settings"]

DEFAULT_HOME_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{name}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            margin: 0;
            padding: 40px;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
        }}
        .container {{
            background: white;
            padding: 40px;
            border-radius: 12px;
            box-shadow: 0 20px 40px rgba(0,0,0,0.1);
            text-align: center;
            max-width: 500px;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Welcome to {name}</h1>
        <p>Your new static website is ready! Start editing to create something amazing.</p>
    </div>
</body>
</html>"""

NOT_FOUND_OR_FORBIDDEN = "Project not found or insufficient permissions"


class ProjectStore:
    """Stores each project as project.json inside its own folder."""

    def __init__(self, page_store: Optional[PageStore] = None):
        """Initialize ProjectStore with projects directory."""
        # Import dynamically to support patching in tests
        import project_store
        self._projects_dir = project_store.PROJECTS_DIR
        self._projects_dir.mkdir(parents=True, exist_ok=True)
        self._page_store = page_store or PageStore()

    def _get_project_dir(self, project_id: str) -> Path:
        """Get the folder of a project."""
        if not is_valid_id(project_id):
            raise NotFoundError("Project not found")
        return self._projects_dir / project_id

    def _load_project(self, project_id: str) -> Optional[dict]:
        """Load project record from file."""
        project_file = self._get_project_dir(project_id) / PROJECT_FILE
        if project_file.exists():
            return json.loads(project_file.read_text())
        return None

    def _save_project(self, project: dict) -> None:
        """Save project record to file."""
        project_dir = self._get_project_dir(project["id"])
        project_dir.mkdir(parents=True, exist_ok=True)
        (project_dir / PROJECT_FILE).write_text(json.dumps(project, indent=2))

    def _load_all(self) -> List[dict]:
        """Load every project record."""
        return [
            json.loads(path.read_text())
            for path in self._projects_dir.glob(f"*/{PROJECT_FILE}")
        ]

    def _get_timestamp(self) -> str:
        """Get current ISO timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def touch(self, project_id: str) -> None:
        """Bump the project's updatedAt."""
        project = self._load_project(project_id)
        if project:
            project["updatedAt"] = self._get_timestamp()
            self._save_project(project)

    def create_project(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        template: Optional[dict] = None
    ) -> dict:
        """
        Create a project and its home page.

        Args:
            user_id: Owner of the project
            name: Project name (required)
            description: Optional description
            template: Template record to seed the home page from

        Returns:
            The stored project record
        """
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("Project name is required")

        taken = {p.get("slug") for p in self._load_all()}
        slug = unique_slug(slugify(name) or "project", taken)

        now = self._get_timestamp()
        project = {
            "id": generate_id(),
            "name": name,
            "slug": slug,
            "description": description,
            "domain": None,
            "status": ProjectStatus.DRAFT.value,
            "settings": {},
            "templateId": template["id"] if template else None,
            "userId": user_id,
            "members": [],
            "createdAt": now,
            "updatedAt": now
        }
        self._save_project(project)

        if template:
            home = {
                "content": template.get("htmlContent", ""),
                "htmlContent": template.get("htmlContent", ""),
                "cssContent": template.get("cssContent", ""),
                "jsContent": template.get("jsContent", ""),
            }
        else:
            default_html = DEFAULT_HOME_PAGE.format(name=name)
            home = {"content": default_html, "htmlContent": default_html}

        self._page_store.create_page(project["id"], user_id, {
            "title": "Home",
            "slug": HOME_PAGE_SLUG,
            "isHomePage": True,
            **home
        })

        logger.info(f"Created project '{name}' ({project['id']}) with slug '{slug}'")
        return project

    def get_project(self, project_id: str) -> dict:
        """
        Get a project record without access checks.

        Raises:
            NotFoundError: if the project does not exist
        """
        project = self._load_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def get_for_viewer(self, project_id: str, user_id: str) -> dict:
        """Get a project the user owns or is a member of."""
        project = self._load_project(project_id)
        if project is None or not can_view(project, user_id):
            raise NotFoundError("Project not found")
        return project

    def get_for_editor(self, project_id: str, user_id: str) -> dict:
        """Get a project the user may change."""
        project = self._load_project(project_id)
        if project is None or not can_edit(project, user_id):
            raise NotFoundError(NOT_FOUND_OR_FORBIDDEN)
        return project

    def get_for_owner(self, project_id: str, user_id: str) -> dict:
        """Get a project the user owns."""
        project = self._load_project(project_id)
        if project is None or not is_owner(project, user_id):
            raise NotFoundError(NOT_FOUND_OR_FORBIDDEN)
        return project

    def list_projects(self, user_id: str) -> List[dict]:
        """
        List projects the user owns or is a member of.

        Returns:
            Project records, most recently updated first
        """
        projects = [p for p in self._load_all() if can_view(p, user_id)]
        projects.sort(key=lambda p: p.get("updatedAt", ""), reverse=True)
        return projects

    def find_published_by_slug(self, slug: str) -> dict:
        """
        Get a PUBLISHED project by slug.

        Raises:
            NotFoundError: when no published project has this slug
        """
        for project in self._load_all():
            if project.get("slug") == slug and project.get("status") == ProjectStatus.PUBLISHED.value:
                return project
        raise NotFoundError("Project not found")

    def update_project(self, project_id: str, user_id: str, changes: Dict[str, Any]) -> dict:
        """
        Update project fields.

        Args:
            project_id: Project identifier
            user_id: Requesting user (owner or OWNER/EDITOR member)
            changes: Fields to change (unknown keys are ignored)

        Returns:
            The updated project record
        """
        project = self.get_for_editor(project_id, user_id)
        changes = {key: value for key, value in changes.items() if key in PROJECT_FIELDS}

        if "name" in changes and not (changes["name"] or "").strip():
            raise InvalidRequestError("Project name is required")
        if "status" in changes:
            try:
                changes["status"] = ProjectStatus(changes["status"]).value
            except ValueError:
                raise InvalidRequestError(f"Invalid status: {changes['status']}")
        if "settings" in changes and not isinstance(changes["settings"], dict):
            raise InvalidRequestError("Settings must be an object")

        project.update(changes)
        project["updatedAt"] = self._get_timestamp()
        self._save_project(project)
        logger.info(f"Updated project {project_id}: {sorted(changes)}")
        return project

    def set_status(self, project_id: str, status: ProjectStatus) -> dict:
        """Set the deployment status of a project (no access checks)."""
        project = self.get_project(project_id)
        project["status"] = status.value
        project["updatedAt"] = self._get_timestamp()
        self._save_project(project)
        return project

    def delete_project(self, project_id: str, user_id: str) -> None:
        """
        Delete a project with its pages and asset records. Owner only.
        """
        self.get_for_owner(project_id, user_id)
        shutil.rmtree(self._get_project_dir(project_id))
        logger.info(f"Deleted project {project_id}")

    def add_member(
        self,
        project_id: str,
        owner_id: str,
        member_id: str,
        role: MemberRole = MemberRole.EDITOR
    ) -> dict:
        """
        Add a collaborator or change their role. Owner only.

        Args:
            project_id: Project identifier
            owner_id: Requesting user, must own the project
            member_id: User to add
            role: Member role

        Returns:
            The updated project record
        """
        project = self.get_for_owner(project_id, owner_id)
        if member_id == project["userId"]:
            raise InvalidRequestError("The project owner cannot be added as a member")

        members = [m for m in project.get("members", []) if m.get("userId") != member_id]
        members.append({
            "userId": member_id,
            "role": role.value,
            "addedAt": self._get_timestamp()
        })
        project["members"] = members
        project["updatedAt"] = self._get_timestamp()
        self._save_project(project)
        logger.info(f"Project {project_id}: {member_id} is now {role.value}")
        return project

    def remove_member(self, project_id: str, owner_id: str, member_id: str) -> dict:
        """Remove a collaborator. Owner only."""
        project = self.get_for_owner(project_id, owner_id)
        members = project.get("members", [])
        remaining = [m for m in members if m.get("userId") != member_id]
        if len(remaining) == len(members):
            raise NotFoundError("Member not found")

        project["members"] = remaining
        project["updatedAt"] = self._get_timestamp()
        self._save_project(project)
        logger.info(f"Project {project_id}: removed member {member_id}")
        return project
