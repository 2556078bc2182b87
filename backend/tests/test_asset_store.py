"""Tests for AssetStore - uploaded files and their records."""

import pytest
from pathlib import Path
from unittest.mock import patch
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from asset_store import AssetStore
from errors import InvalidRequestError, NotFoundError
from id_generator import generate_id

USER_ID = "b" * 32
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def project_id():
    return generate_id()


class TestUpload:

    def test_upload_stores_file_and_record(self, assets, data_dirs, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "logo.png", "image/png", PNG_BYTES, alt="Logo")

        assert asset["originalName"] == "logo.png"
        assert asset["filename"].endswith(".png")
        assert asset["filename"] != "logo.png"
        assert asset["type"] == "IMAGE"
        assert asset["size"] == len(PNG_BYTES)
        assert asset["alt"] == "Logo"
        assert asset["folder"] is None
        assert asset["url"] == f"/uploads/{project_id}/{asset['filename']}"

        stored = data_dirs["uploads"] / project_id / asset["filename"]
        assert stored.read_bytes() == PNG_BYTES
        assert assets.get_asset(project_id, asset["id"]) == asset

    def test_type_follows_mime(self, assets, project_id):
        pdf = assets.upload_asset(project_id, USER_ID, "cv.pdf", "application/pdf", b"%PDF")
        font = assets.upload_asset(project_id, USER_ID, "a.woff2", "font/woff2", b"wOF2")
        other = assets.upload_asset(project_id, USER_ID, "data.bin", "", b"\x01")

        assert pdf["type"] == "DOCUMENT"
        assert font["type"] == "FONT"
        assert other["type"] == "OTHER"
        assert other["mimeType"] == "application/octet-stream"

    def test_empty_upload_rejected(self, assets, project_id):
        with pytest.raises(InvalidRequestError, match="No file provided"):
            assets.upload_asset(project_id, USER_ID, "empty.txt", "text/plain", b"")

    def test_oversized_upload_rejected(self, data_dirs, project_id):
        with patch('asset_store.MAX_UPLOAD_SIZE', 1024 * 1024):
            store = AssetStore()

            with pytest.raises(InvalidRequestError, match="File too large. Maximum size is 1MB"):
                store.upload_asset(project_id, USER_ID, "big.bin", "application/octet-stream", b"x" * (1024 * 1024 + 1))

    def test_path_components_stripped_from_name(self, assets, data_dirs, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "../../evil.js", "text/javascript", b"alert(1)")

        assert asset["originalName"] == "evil.js"
        assert (data_dirs["uploads"] / project_id / asset["filename"]).is_file()


class TestListAndUpdate:

    def test_filters(self, assets, project_id):
        assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES, folder="images")
        assets.upload_asset(project_id, USER_ID, "b.png", "image/png", PNG_BYTES)
        assets.upload_asset(project_id, USER_ID, "c.pdf", "application/pdf", b"%PDF", folder="images")

        assert len(assets.list_assets(project_id)) == 3
        assert assets.count_assets(project_id) == 3
        assert {a["originalName"] for a in assets.list_assets(project_id, folder="images")} == {"a.png", "c.pdf"}
        assert {a["originalName"] for a in assets.list_assets(project_id, asset_type="image")} == {"a.png", "b.png"}
        assert [a["originalName"] for a in assets.list_assets(project_id, folder="images", asset_type="DOCUMENT")] == ["c.pdf"]

    def test_update_folder_and_alt(self, assets, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)

        updated = assets.update_asset(project_id, asset["id"], folder="hero", alt="Hero image")

        assert updated["folder"] == "hero"
        assert updated["alt"] == "Hero image"
        assert assets.get_asset(project_id, asset["id"])["folder"] == "hero"

    def test_find_by_filename(self, assets, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)

        assert assets.find_by_filename(project_id, asset["filename"])["id"] == asset["id"]
        with pytest.raises(NotFoundError):
            assets.find_by_filename(project_id, "../project.json")


class TestReadAndDelete:

    def test_read_asset_bytes(self, assets, data_dirs, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)
        assert assets.read_asset_bytes(asset) == PNG_BYTES

        (data_dirs["uploads"] / project_id / asset["filename"]).unlink()
        assert assets.read_asset_bytes(asset) is None

    def test_delete_removes_file_and_record(self, assets, data_dirs, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)

        assets.delete_asset(project_id, asset["id"])

        assert not (data_dirs["uploads"] / project_id / asset["filename"]).exists()
        with pytest.raises(NotFoundError):
            assets.get_asset(project_id, asset["id"])

    def test_delete_with_missing_file_still_removes_record(self, assets, data_dirs, project_id):
        asset = assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)
        (data_dirs["uploads"] / project_id / asset["filename"]).unlink()

        assets.delete_asset(project_id, asset["id"])

        assert assets.list_assets(project_id) == []

    def test_delete_project_uploads(self, assets, data_dirs, project_id):
        assets.upload_asset(project_id, USER_ID, "a.png", "image/png", PNG_BYTES)

        assets.delete_project_uploads(project_id)

        assert not (data_dirs["uploads"] / project_id).exists()
