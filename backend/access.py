"""Project access rules: ownership and member role checks."""

from typing import Optional

from models import MemberRole

# Member roles allowed to change project content
EDIT_ROLES = [MemberRole.OWNER.value, MemberRole.EDITOR.value]


def is_owner(project: dict, user_id: str) -> bool:
    """True if the user created the project."""
    return bool(user_id) and project.get("userId") == user_id


def member_role(project: dict, user_id: str) -> Optional[str]:
    """Role of the user among the project members, or None."""
    for member in project.get("members", []):
        if member.get("userId") == user_id:
            return member.get("role")
    return None


def can_view(project: dict, user_id: str) -> bool:
    """Owner or any member may view a project."""
    return is_owner(project, user_id) or member_role(project, user_id) is not None


def can_edit(project: dict, user_id: str) -> bool:
    """Owner or OWNER/EDITOR members may change a project."""
    return is_owner(project, user_id) or member_role(project, user_id) in EDIT_ROLES
