"""Asset Store - uploaded binary files and their records."""

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from config import (
    ASSETS_DIR_NAME,
    MAX_UPLOAD_SIZE,
    PROJECTS_DIR,
    UPLOADS_DIR,
    UPLOADS_URL_PREFIX,
)
from errors import InvalidRequestError, NotFoundError
from id_generator import generate_id, is_valid_id
from models import asset_type_for_mime

logger = logging.getLogger(__name__)

# Stored file names: <uuid4>.<ext> or <uuid4>
STORED_FILENAME_PATTERN = re.compile(r'^[a-f0-9-]{36}(\.[A-Za-z0-9]+)?$')


class AssetStore:
    """Stores asset records per project and the uploaded bytes beside them."""

    def __init__(self):
        """Initialize AssetStore with projects and uploads directories."""
        # Import dynamically to support patching in tests
        import asset_store
        self._projects_dir = asset_store.PROJECTS_DIR
        self._uploads_dir = asset_store.UPLOADS_DIR
        self._max_size = asset_store.MAX_UPLOAD_SIZE

    def _get_assets_dir(self, project_id: str) -> Path:
        """Get the directory of a project's asset records."""
        if not is_valid_id(project_id):
            raise NotFoundError("Project not found")
        return self._projects_dir / project_id / ASSETS_DIR_NAME

    def _get_asset_path(self, project_id: str, asset_id: str) -> Path:
        """Get path to an asset JSON record."""
        if not is_valid_id(asset_id):
            raise NotFoundError("Asset not found")
        return self._get_assets_dir(project_id) / f"{asset_id}.json"

    def _get_upload_dir(self, project_id: str) -> Path:
        """Get the directory holding a project's uploaded files."""
        return self._uploads_dir / project_id

    def _save_asset(self, asset: dict) -> None:
        """Save asset record to file."""
        assets_dir = self._get_assets_dir(asset["projectId"])
        assets_dir.mkdir(parents=True, exist_ok=True)
        (assets_dir / f"{asset['id']}.json").write_text(json.dumps(asset, indent=2))

    def _get_timestamp(self) -> str:
        """Get current ISO timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def upload_asset(
        self,
        project_id: str,
        user_id: str,
        original_name: str,
        mime_type: str,
        data: bytes,
        folder: Optional[str] = None,
        alt: Optional[str] = None
    ) -> dict:
        """
        Store an uploaded file and create its record.

        Args:
            project_id: Project identifier
            user_id: Uploading user
            original_name: File name as sent by the browser
            mime_type: Content type as sent by the browser
            data: File contents
            folder: Optional virtual folder for grouping
            alt: Optional alternative text

        Returns:
            The stored asset record
        """
        if not data:
            raise InvalidRequestError("No file provided")
        if len(data) > self._max_size:
            raise InvalidRequestError(
                f"File too large. Maximum size is {self._max_size // (1024 * 1024)}MB"
            )

        # Generate unique filename, keeping the original extension
        original_name = Path(original_name or "upload").name
        extension = original_name.rsplit('.', 1)[-1] if '.' in original_name else ''
        if extension and not extension.isalnum():
            extension = ''
        unique_filename = f"{uuid.uuid4()}.{extension}" if extension else str(uuid.uuid4())

        upload_dir = self._get_upload_dir(project_id)
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / unique_filename).write_bytes(data)

        now = self._get_timestamp()
        asset = {
            "id": generate_id(),
            "projectId": project_id,
            "userId": user_id,
            "filename": unique_filename,
            "originalName": original_name,
            "mimeType": mime_type or "application/octet-stream",
            "size": len(data),
            "url": f"{UPLOADS_URL_PREFIX}/{project_id}/{unique_filename}",
            "type": asset_type_for_mime(mime_type).value,
            "folder": folder or None,
            "alt": alt or None,
            "createdAt": now,
            "updatedAt": now
        }
        self._save_asset(asset)
        logger.info(f"Stored asset {original_name} as {unique_filename} ({len(data)} bytes)")
        return asset

    def list_assets(
        self,
        project_id: str,
        folder: Optional[str] = None,
        asset_type: Optional[str] = None
    ) -> List[dict]:
        """
        List a project's assets, newest first.

        Args:
            project_id: Project identifier
            folder: Only assets in this folder
            asset_type: Only assets of this type (case-insensitive)
        """
        assets_dir = self._get_assets_dir(project_id)
        if not assets_dir.exists():
            return []

        assets = [json.loads(path.read_text()) for path in assets_dir.glob("*.json")]
        if folder:
            assets = [a for a in assets if a.get("folder") == folder]
        if asset_type:
            assets = [a for a in assets if a.get("type") == asset_type.upper()]
        assets.sort(key=lambda a: a.get("createdAt", ""), reverse=True)
        return assets

    def count_assets(self, project_id: str) -> int:
        """Number of assets in a project."""
        assets_dir = self._get_assets_dir(project_id)
        if not assets_dir.exists():
            return 0
        return sum(1 for _ in assets_dir.glob("*.json"))

    def get_asset(self, project_id: str, asset_id: str) -> dict:
        """
        Get an asset record.

        Raises:
            NotFoundError: if the asset does not exist in this project
        """
        asset_path = self._get_asset_path(project_id, asset_id)
        if not asset_path.exists():
            raise NotFoundError("Asset not found")
        return json.loads(asset_path.read_text())

    def find_by_filename(self, project_id: str, filename: str) -> dict:
        """Get the asset record for a stored file name."""
        if STORED_FILENAME_PATTERN.match(filename or ""):
            for asset in self.list_assets(project_id):
                if asset.get("filename") == filename:
                    return asset
        raise NotFoundError("Asset not found")

    def update_asset(
        self,
        project_id: str,
        asset_id: str,
        folder: Optional[str] = None,
        alt: Optional[str] = None
    ) -> dict:
        """Replace the folder and alt text of an asset."""
        asset = self.get_asset(project_id, asset_id)
        asset["folder"] = folder
        asset["alt"] = alt
        asset["updatedAt"] = self._get_timestamp()
        self._save_asset(asset)
        return asset

    def read_asset_bytes(self, asset: dict) -> Optional[bytes]:
        """
        Read the stored file of an asset.

        Returns:
            File contents, or None when the file is missing
        """
        file_path = self._get_upload_dir(asset["projectId"]) / asset["filename"]
        if not file_path.is_file():
            logger.warning(f"Asset file missing: {file_path}")
            return None
        return file_path.read_bytes()

    def delete_asset(self, project_id: str, asset_id: str) -> None:
        """
        Delete an asset record and its file.

        A file that cannot be removed is logged and the record is
        deleted anyway.
        """
        asset = self.get_asset(project_id, asset_id)

        file_path = self._get_upload_dir(project_id) / asset["filename"]
        try:
            file_path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete file from filesystem: {e}")

        self._get_asset_path(project_id, asset_id).unlink()
        logger.info(f"Deleted asset {asset_id} from project {project_id}")

    def delete_project_uploads(self, project_id: str) -> None:
        """Remove every uploaded file of a project."""
        import shutil

        upload_dir = self._get_upload_dir(project_id)
        if upload_dir.exists():
            shutil.rmtree(upload_dir)
            logger.info(f"Removed uploads of project {project_id}")
