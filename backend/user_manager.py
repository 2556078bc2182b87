"""User Manager - handles user creation, lookup, and registry management."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import USERS_DIR, USER_REGISTRY_FILE
from errors import InvalidRequestError, UnauthorizedError
from id_generator import generate_id, is_valid_id
from models import UserRole

logger = logging.getLogger(__name__)


class UserManager:
    """Manages user creation, lookup, and registry operations."""

    def __init__(self):
        """Initialize UserManager with users directory."""
        # Import dynamically to support patching in tests
        import user_manager
        self._users_dir = user_manager.USERS_DIR
        self._ensure_users_dir()

    def _ensure_users_dir(self) -> None:
        """Ensure the users directory exists."""
        self._users_dir.mkdir(parents=True, exist_ok=True)

    def _get_registry_path(self) -> Path:
        """Get path to registry.json file."""
        return self._users_dir / USER_REGISTRY_FILE

    def _load_registry(self) -> dict:
        """Load registry from file, creating empty one if not exists."""
        registry_path = self._get_registry_path()
        if registry_path.exists():
            return json.loads(registry_path.read_text())
        return {}

    def _save_registry(self, registry: dict) -> None:
        """Save registry to file."""
        registry_path = self._get_registry_path()
        registry_path.write_text(json.dumps(registry, indent=2))

    def _make_registry_key(self, email: str) -> str:
        """Create registry key from email."""
        return email.strip().lower()

    def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        role: UserRole = UserRole.EDITOR
    ) -> dict:
        """
        Create a new user or return existing user.

        Args:
            email: User's email address (unique, case-insensitive)
            name: Display name
            role: Account role

        Returns:
            Dict with the user record and is_new flag
        """
        if not email or '@' not in email:
            raise InvalidRequestError("A valid email is required")

        # Check if user already exists
        existing = self.get_user_by_email(email)
        if existing:
            return {"user": existing, "is_new": False}

        user_id = generate_id()
        now = datetime.now(timezone.utc).isoformat()
        user_data = {
            "id": user_id,
            "email": self._make_registry_key(email),
            "name": name,
            "role": role.value,
            "avatar": None,
            "createdAt": now,
            "updatedAt": now
        }
        (self._users_dir / f"{user_id}.json").write_text(json.dumps(user_data, indent=2))

        # Update registry
        registry = self._load_registry()
        registry[self._make_registry_key(email)] = user_id
        self._save_registry(registry)

        logger.info(f"Created user {user_id} ({user_data['email']})")
        return {"user": user_data, "is_new": True}

    def get_user(self, user_id: str) -> Optional[dict]:
        """
        Get user info by ID.

        Args:
            user_id: User's ID

        Returns:
            User info dict if found, None otherwise
        """
        if not is_valid_id(user_id):
            return None
        user_json_path = self._users_dir / f"{user_id}.json"
        if user_json_path.exists():
            return json.loads(user_json_path.read_text())
        return None

    def get_user_by_email(self, email: str) -> Optional[dict]:
        """
        Look up existing user by email.

        Args:
            email: User's email address

        Returns:
            User info dict if found, None otherwise
        """
        registry = self._load_registry()
        user_id = registry.get(self._make_registry_key(email))
        if user_id:
            return self.get_user(user_id)
        return None

    def require_user(self, user_id: Optional[str]) -> dict:
        """Resolve the requesting user or raise UnauthorizedError."""
        user = self.get_user(user_id) if user_id else None
        if user is None:
            raise UnauthorizedError("Unauthorized")
        return user

    def public_profile(self, user_id: str) -> Optional[dict]:
        """User fields safe to embed in other records."""
        user = self.get_user(user_id)
        if user is None:
            return None
        return {key: user.get(key) for key in ("id", "name", "email", "avatar")}

    def list_users(self) -> list:
        """
        List all user IDs.

        Returns:
            List of user ID strings
        """
        registry = self._load_registry()
        return list(set(registry.values()))
