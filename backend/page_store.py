"""Page Store - persists the HTML/CSS/JS pages of each project."""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import PROJECTS_DIR, PAGES_DIR_NAME
from errors import ConflictError, InvalidRequestError, NotFoundError
from id_generator import generate_id, is_valid_id
from models import PageStatus

logger = logging.getLogger(__name__)

# Fields a client may set on a page
PAGE_FIELDS = [
    "title", "slug", "content", "htmlContent", "cssContent", "jsContent",
    "metaTitle", "metaDesc", "keywords", "status", "isHomePage",
]

HOME_PAGE_SLUG = "index"

# Slugs become file names of the exported site
PAGE_SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


class PageStore:
    """Stores pages as one JSON file per page inside the project folder."""

    def __init__(self):
        """Initialize PageStore with projects directory."""
        # Import dynamically to support patching in tests
        import page_store
        self._projects_dir = page_store.PROJECTS_DIR

    def _get_pages_dir(self, project_id: str) -> Path:
        """Get the pages directory of a project."""
        if not is_valid_id(project_id):
            raise NotFoundError("Project not found")
        return self._projects_dir / project_id / PAGES_DIR_NAME

    def _get_page_path(self, project_id: str, page_id: str) -> Path:
        """Get path to a page JSON file."""
        if not is_valid_id(page_id):
            raise NotFoundError("Page not found")
        return self._get_pages_dir(project_id) / f"{page_id}.json"

    def _save_page(self, page: dict) -> None:
        """Save page record to file."""
        pages_dir = self._get_pages_dir(page["projectId"])
        pages_dir.mkdir(parents=True, exist_ok=True)
        (pages_dir / f"{page['id']}.json").write_text(json.dumps(page, indent=2))

    def _get_timestamp(self) -> str:
        """Get current ISO timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def _load_all(self, project_id: str) -> List[dict]:
        """Load every page record of a project."""
        pages_dir = self._get_pages_dir(project_id)
        if not pages_dir.exists():
            return []
        return [json.loads(path.read_text()) for path in pages_dir.glob("*.json")]

    def _find_by_slug(self, project_id: str, slug: str) -> Optional[dict]:
        """Find a page of the project by slug."""
        for page in self._load_all(project_id):
            if page.get("slug") == slug:
                return page
        return None

    def _check_slug(self, slug: str) -> None:
        """Reject slugs that are not lowercase letters, digits and hyphens."""
        if not PAGE_SLUG_PATTERN.match(slug):
            raise InvalidRequestError("Page slug may only contain lowercase letters, numbers and hyphens")

    def _check_status(self, status: Any) -> str:
        try:
            return PageStatus(status).value
        except ValueError:
            raise InvalidRequestError(f"Invalid status: {status}")

    def _demote_home_pages(self, project_id: str, except_id: Optional[str] = None) -> None:
        """Clear the home page flag on every other page of the project."""
        for page in self._load_all(project_id):
            if page.get("isHomePage") and page["id"] != except_id:
                page["isHomePage"] = False
                self._save_page(page)
                logger.info(f"Page {page['id']} is no longer the home page of {project_id}")

    def list_pages(self, project_id: str) -> List[dict]:
        """
        List the pages of a project.

        Args:
            project_id: Project identifier

        Returns:
            Pages with the home page first, then most recently updated first
        """
        pages = self._load_all(project_id)
        pages.sort(key=lambda p: p.get("updatedAt", ""), reverse=True)
        pages.sort(key=lambda p: bool(p.get("isHomePage")), reverse=True)
        return pages

    def list_pages_by_creation(self, project_id: str) -> List[dict]:
        """List pages oldest first (navigation order of the published site)."""
        pages = self._load_all(project_id)
        pages.sort(key=lambda p: p.get("createdAt", ""))
        return pages

    def count_pages(self, project_id: str) -> int:
        """Number of pages in a project."""
        pages_dir = self._get_pages_dir(project_id)
        if not pages_dir.exists():
            return 0
        return sum(1 for _ in pages_dir.glob("*.json"))

    def create_page(self, project_id: str, user_id: str, data: Dict[str, Any]) -> dict:
        """
        Create a new page in a project.

        Args:
            project_id: Project identifier
            user_id: Author of the page
            data: Page fields (title and slug required)

        Returns:
            The stored page record
        """
        title = (data.get("title") or "").strip()
        slug = (data.get("slug") or "").strip()
        if not title:
            raise InvalidRequestError("Page title is required")
        if not slug:
            raise InvalidRequestError("Page slug is required")
        self._check_slug(slug)
        status = self._check_status(data.get("status") or PageStatus.DRAFT.value)

        if self._find_by_slug(project_id, slug):
            raise ConflictError("A page with this slug already exists")

        is_home_page = bool(data.get("isHomePage", False))
        if is_home_page:
            self._demote_home_pages(project_id)

        content = data.get("content") or ""
        now = self._get_timestamp()
        page = {
            "id": generate_id(),
            "projectId": project_id,
            "userId": user_id,
            "title": title,
            "slug": slug,
            "content": content,
            "htmlContent": data.get("htmlContent") or content,
            "cssContent": data.get("cssContent") or "",
            "jsContent": data.get("jsContent") or "",
            "metaTitle": data.get("metaTitle"),
            "metaDesc": data.get("metaDesc"),
            "keywords": data.get("keywords"),
            "status": status,
            "isHomePage": is_home_page,
            "createdAt": now,
            "updatedAt": now
        }
        self._save_page(page)
        logger.info(f"Created page '{slug}' ({page['id']}) in project {project_id}")
        return page

    def get_page(self, project_id: str, page_id: str) -> dict:
        """
        Get a page of a project.

        Raises:
            NotFoundError: if the page does not exist in this project
        """
        page_path = self._get_page_path(project_id, page_id)
        if not page_path.exists():
            raise NotFoundError("Page not found")
        return json.loads(page_path.read_text())

    def get_page_by_slug(self, project_id: str, slug: str) -> dict:
        """Get a page of a project by its slug."""
        page = self._find_by_slug(project_id, slug)
        if page is None:
            raise NotFoundError("Page not found")
        return page

    def get_home_page(self, project_id: str) -> Optional[dict]:
        """The home page, or the oldest page when none is flagged."""
        pages = self.list_pages_by_creation(project_id)
        for page in pages:
            if page.get("isHomePage"):
                return page
        return pages[0] if pages else None

    def update_page(self, project_id: str, page_id: str, changes: Dict[str, Any]) -> dict:
        """
        Update a page.

        A new slug is checked against the other pages of the project, and
        becoming the home page demotes the current one. ``htmlContent``
        follows an explicit ``htmlContent``, then ``content``, then keeps
        its stored value.

        Args:
            project_id: Project identifier
            page_id: Page identifier
            changes: Fields to change (unknown keys and None values are ignored)

        Returns:
            The updated page record
        """
        page = self.get_page(project_id, page_id)
        changes = {
            key: value for key, value in changes.items()
            if key in PAGE_FIELDS and value is not None
        }

        if "title" in changes and not changes["title"].strip():
            raise InvalidRequestError("Page title is required")
        if "slug" in changes:
            changes["slug"] = changes["slug"].strip()
            if not changes["slug"]:
                raise InvalidRequestError("Page slug is required")
            self._check_slug(changes["slug"])
        if "status" in changes:
            changes["status"] = self._check_status(changes["status"])

        new_slug = changes.get("slug")
        if new_slug and new_slug != page["slug"]:
            if self._find_by_slug(project_id, new_slug):
                raise ConflictError("A page with this slug already exists")

        if changes.get("isHomePage") and not page.get("isHomePage"):
            self._demote_home_pages(project_id, except_id=page_id)

        html_content = changes.get("htmlContent")
        if html_content is None:
            html_content = changes.get("content")
        if html_content is None:
            html_content = page.get("htmlContent")

        page.update(changes)
        page["htmlContent"] = html_content
        page["updatedAt"] = self._get_timestamp()
        self._save_page(page)
        logger.info(f"Updated page {page_id} in project {project_id}: {sorted(changes)}")
        return page

    def delete_page(self, project_id: str, page_id: str) -> None:
        """
        Delete a page.

        Raises:
            InvalidRequestError: when the page is the home page
        """
        page = self.get_page(project_id, page_id)
        if page.get("isHomePage"):
            raise InvalidRequestError("Cannot delete the home page")
        self._get_page_path(project_id, page_id).unlink()
        logger.info(f"Deleted page {page_id} from project {project_id}")
