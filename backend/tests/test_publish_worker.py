"""Tests for PublishWorker - export, upload and activation of projects."""

import pytest
from pathlib import Path
from unittest.mock import MagicMock
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from deployment_tracker import DeploymentTracker
from errors import PublishError
from publish_worker import PublishWorker


@pytest.fixture
def tracker(data_dirs):
    return DeploymentTracker()


def make_publisher(bucket):
    publisher = MagicMock()
    publisher.bucket = bucket
    return publisher


class TestPublishWorker:

    def test_publish_to_bucket(self, projects, pages, assets, tracker, project, owner):
        assets.upload_asset(project["id"], owner["id"], "logo.png", "image/png", b"png")
        publisher = make_publisher("sites")
        uploaded = {}

        def fake_publish(site_dir, published_project):
            uploaded["files"] = sorted(p.relative_to(site_dir).as_posix() for p in Path(site_dir).rglob("*") if p.is_file())
            return {"url": "http://sites/my-site/", "bucket": "sites", "prefix": "my-site", "files": uploaded["files"]}

        publisher.publish.side_effect = fake_publish
        worker = PublishWorker(projects, pages, assets, tracker=tracker, publisher=publisher)
        deployment_id = tracker.create_deployment(project["id"], owner["id"], worker.target)

        result = worker.run_publish(deployment_id, project["id"])

        assert result["url"] == "http://sites/my-site/"
        assert "index.html" in uploaded["files"]
        assert "README.md" in uploaded["files"]
        assert any(name.startswith("assets/") for name in uploaded["files"])

        deployment = tracker.get_deployment(deployment_id)
        assert deployment["status"] == "completed"
        assert deployment["target"] == "s3"
        assert deployment["url"] == "http://sites/my-site/"
        assert deployment["currentStep"] == 3
        assert projects.get_project(project["id"])["status"] == "PUBLISHED"

    def test_publish_without_bucket_uses_preview(self, projects, pages, assets, tracker, project, owner):
        publisher = make_publisher("")
        worker = PublishWorker(projects, pages, assets, tracker=tracker, publisher=publisher)
        deployment_id = tracker.create_deployment(project["id"], owner["id"], worker.target)

        result = worker.run_publish(deployment_id, project["id"])

        publisher.publish.assert_not_called()
        assert result["url"].endswith(f"/preview/{project['slug']}")
        assert tracker.get_deployment(deployment_id)["target"] == "preview"
        assert projects.get_project(project["id"])["status"] == "PUBLISHED"

    def test_failed_upload_recorded(self, projects, pages, assets, tracker, project, owner):
        publisher = make_publisher("sites")
        publisher.publish.side_effect = PublishError("Upload failed: AccessDenied")
        worker = PublishWorker(projects, pages, assets, tracker=tracker, publisher=publisher)
        deployment_id = tracker.create_deployment(project["id"], owner["id"], "s3")

        assert worker.run_publish(deployment_id, project["id"]) is None

        deployment = tracker.get_deployment(deployment_id)
        assert deployment["status"] == "failed"
        assert "AccessDenied" in deployment["error"]
        assert deployment["logs"][-1]["level"] == "ERROR"
        # The project keeps its previous status
        assert projects.get_project(project["id"])["status"] == "DRAFT"

    def test_start_publish_runs_in_background(self, projects, pages, assets, tracker, project, owner):
        worker = PublishWorker(projects, pages, assets, tracker=tracker, publisher=make_publisher(""))

        deployment_id = worker.start_publish(project["id"], owner["id"])
        thread = worker.threads.get(deployment_id)
        if thread is not None:
            thread.join(timeout=5)

        assert tracker.get_deployment(deployment_id)["status"] == "completed"
        assert worker.threads == {}
