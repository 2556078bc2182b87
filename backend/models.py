"""Enumerations shared by the stores, the editor session and the API."""

from enum import Enum


class ProjectStatus(Enum):
    """Deployment status of a project."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


# Pages carry the same lifecycle as their project
PageStatus = ProjectStatus


class AssetType(Enum):
    """Kind of uploaded binary file."""
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    DOCUMENT = "DOCUMENT"
    FONT = "FONT"
    OTHER = "OTHER"


class MemberRole(Enum):
    """Role of a collaborator inside a project."""
    OWNER = "OWNER"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class UserRole(Enum):
    """Account-wide role of a user."""
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class EditorFile(Enum):
    """The three content buffers of a page."""
    HTML = "html"
    CSS = "css"
    JS = "js"

    @property
    def field(self) -> str:
        """Page record field holding this buffer."""
        return f"{self.value}Content"

    @property
    def language(self) -> str:
        """Code editor language for this buffer."""
        return "javascript" if self is EditorFile.JS else self.value


def asset_type_for_mime(mime_type: str) -> AssetType:
    """Classify an upload by its MIME type."""
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return AssetType.IMAGE
    if mime_type.startswith("video/"):
        return AssetType.VIDEO
    if "pdf" in mime_type or "document" in mime_type:
        return AssetType.DOCUMENT
    if "font" in mime_type:
        return AssetType.FONT
    return AssetType.OTHER
