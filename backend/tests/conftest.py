"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep config.py from creating data folders inside the repository
os.environ.setdefault("SITE_DATA_DIR", tempfile.mkdtemp(prefix="site-manager-tests-"))
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture
def data_dirs(tmp_path, monkeypatch):
    """Point every store at empty folders under tmp_path."""
    dirs = {
        "projects": tmp_path / "projects",
        "users": tmp_path / "users",
        "templates": tmp_path / "templates",
        "deployments": tmp_path / "deployments",
        "uploads": tmp_path / "uploads",
    }
    for directory in dirs.values():
        directory.mkdir()

    monkeypatch.setattr("user_manager.USERS_DIR", dirs["users"])
    monkeypatch.setattr("page_store.PROJECTS_DIR", dirs["projects"])
    monkeypatch.setattr("asset_store.PROJECTS_DIR", dirs["projects"])
    monkeypatch.setattr("asset_store.UPLOADS_DIR", dirs["uploads"])
    monkeypatch.setattr("project_store.PROJECTS_DIR", dirs["projects"])
    monkeypatch.setattr("template_store.TEMPLATES_DIR", dirs["templates"])
    monkeypatch.setattr("deployment_tracker.DEPLOYMENTS_DIR", dirs["deployments"])
    return dirs


@pytest.fixture
def users(data_dirs):
    from user_manager import UserManager
    return UserManager()


@pytest.fixture
def pages(data_dirs):
    from page_store import PageStore
    return PageStore()


@pytest.fixture
def assets(data_dirs):
    from asset_store import AssetStore
    return AssetStore()


@pytest.fixture
def templates(data_dirs):
    from template_store import TemplateStore
    return TemplateStore()


@pytest.fixture
def projects(pages):
    from project_store import ProjectStore
    return ProjectStore(page_store=pages)


@pytest.fixture
def owner(users):
    """A registered user who owns the projects created in tests."""
    return users.create_user("owner@example.com", name="Owner")["user"]


@pytest.fixture
def project(projects, owner):
    return projects.create_project(owner["id"], "My Site", description="A test site")
