"""Tests for exporter - static bundle as zip archive or directory."""

import io
import zipfile
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import ExportError
from exporter import build_export_archive, export_filename, page_filename, write_site

PROJECT = {"id": "0123456789abcdef0123456789abcdef", "name": "My Site", "slug": "my-site", "description": None}
PAGES = [
    {"id": "h", "title": "Home", "slug": "index", "htmlContent": "<h1>Home</h1>", "cssContent": "", "jsContent": ""},
    {"id": "a", "title": "About", "slug": "about", "htmlContent": "<h1>About</h1>", "cssContent": "h1{}", "jsContent": ""},
]
ASSETS = [
    {"id": "1", "filename": "logo.png", "url": "/uploads/p/logo.png"},
    {"id": "2", "filename": "gone.css", "url": "/uploads/p/gone.css"},
]
STORED = {"logo.png": b"\x89PNG-bytes"}


def read_asset(asset):
    return STORED.get(asset["filename"])


def test_page_filenames():
    assert page_filename(PAGES[0]) == "index.html"
    assert page_filename(PAGES[1]) == "about.html"


def test_export_filename():
    assert export_filename(PROJECT) == "my-site.zip"
    assert export_filename({"name": "My  Big Site", "slug": ""}) == "my-big-site.zip"


def test_archive_contents():
    data = build_export_archive(PROJECT, PAGES, ASSETS, read_asset)

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        names = set(archive.namelist())
        assert names == {"index.html", "about.html", "assets/logo.png", "README.md"}

        about = archive.read("about.html").decode()
        assert "<title>About</title>" in about
        assert "<h1>About</h1>" in about
        assert "h1{}" in about

        assert archive.read("assets/logo.png") == b"\x89PNG-bytes"

        readme = archive.read("README.md").decode()
        assert readme.startswith("# My Site")
        assert "No description provided." in readme
        assert f"Project ID: {PROJECT['id']}" in readme
        assert "Generated on: " in readme


def test_assets_without_url_skipped():
    data = build_export_archive(PROJECT, [], [{"id": "3", "filename": "x.png", "url": None}], read_asset)

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == ["README.md"]


def test_write_site(tmp_path):
    written = write_site(tmp_path, {**PROJECT, "description": "Bakery site"}, PAGES, ASSETS, read_asset)

    assert set(written) == {"index.html", "about.html", "assets/logo.png", "README.md"}
    assert (tmp_path / "assets" / "logo.png").read_bytes() == b"\x89PNG-bytes"
    assert "Bakery site" in (tmp_path / "README.md").read_text()
    assert "<h1>Home</h1>" in (tmp_path / "index.html").read_text()


def test_traversal_slug_refused(tmp_path):
    escaping = [{**PAGES[1], "slug": "../escaped"}]
    site = tmp_path / "site"
    site.mkdir()

    with pytest.raises(ExportError, match="Invalid file name"):
        write_site(site, PROJECT, escaping, [], read_asset)
    with pytest.raises(ExportError, match="Invalid file name"):
        build_export_archive(PROJECT, escaping, [], read_asset)

    assert not (tmp_path / "escaped.html").exists()
    assert list(site.iterdir()) == []


def test_asset_name_outside_assets_refused(tmp_path):
    assets = [{"id": "9", "filename": "../../outside.png", "url": "/uploads/p/x"}]

    with pytest.raises(ExportError):
        write_site(tmp_path, PROJECT, [], assets, lambda asset: b"x")
