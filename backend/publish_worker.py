"""Background worker that publishes projects."""

import logging
import tempfile
import threading
from typing import Any, Dict, Optional

from config import get_preview_url
from deployment_tracker import DeploymentTracker
from exporter import write_site
from models import ProjectStatus
from s3_publisher import S3Publisher

logger = logging.getLogger(__name__)


class PublishWorker:
    """Runs publish jobs in background threads and records them as deployments."""

    def __init__(
        self,
        project_store,
        page_store,
        asset_store,
        tracker: Optional[DeploymentTracker] = None,
        publisher: Optional[S3Publisher] = None
    ):
        """
        Initialize PublishWorker.

        Args:
            project_store: Store used to read and mark projects
            page_store: Store used to read pages
            asset_store: Store used to read asset records and bytes
            tracker: Deployment records (default: DeploymentTracker())
            publisher: S3 uploader (default: S3Publisher())
        """
        self.project_store = project_store
        self.page_store = page_store
        self.asset_store = asset_store
        self.tracker = tracker or DeploymentTracker()
        self.publisher = publisher or S3Publisher()
        self.threads: Dict[str, threading.Thread] = {}
        self.lock = threading.Lock()
        logger.info("PublishWorker initialized")

    @property
    def target(self) -> str:
        """Where sites go: the S3 bucket when configured, else the built-in preview."""
        return "s3" if self.publisher.bucket else "preview"

    def start_publish(self, project_id: str, user_id: str) -> str:
        """
        Start publishing a project in a background thread.

        This method returns immediately with the deployment id.
        """
        deployment_id = self.tracker.create_deployment(project_id, user_id, self.target)

        worker = threading.Thread(
            target=self.run_publish,
            args=(deployment_id, project_id),
            daemon=True,
            name=f"Publish-{project_id}"
        )
        with self.lock:
            self.threads[deployment_id] = worker
        worker.start()

        logger.info(f"Started publish worker for project {project_id} (deployment {deployment_id})")
        return deployment_id

    def run_publish(self, deployment_id: str, project_id: str) -> Optional[Dict[str, Any]]:
        """
        Export, upload and activate a project; record the outcome.

        Returns:
            The deployment result, or None when publishing failed
        """
        tracker = self.tracker
        try:
            tracker.update_status(deployment_id, status="running", current_step=1)
            project = self.project_store.get_project(project_id)
            pages = self.page_store.list_pages_by_creation(project_id)
            assets = self.asset_store.list_assets(project_id)

            with tempfile.TemporaryDirectory(prefix=f"publish-{project['slug']}-") as site_dir:
                files = write_site(site_dir, project, pages, assets, self.asset_store.read_asset_bytes)
                tracker.log(deployment_id, "INFO", f"Exported {len(files)} files", step=1)

                tracker.update_status(deployment_id, current_step=2)
                if self.publisher.bucket:
                    upload = self.publisher.publish(site_dir, project)
                    url = upload["url"]
                    tracker.log(
                        deployment_id, "INFO", f"Uploaded to s3://{upload['bucket']}/{upload['prefix']}/",
                        step=2, details={"files": len(upload["files"])}
                    )
                else:
                    url = get_preview_url(project["slug"])
                    tracker.log(deployment_id, "INFO", "No publish bucket configured, serving from preview", step=2)

            tracker.update_status(deployment_id, current_step=3)
            self.project_store.set_status(project_id, ProjectStatus.PUBLISHED)
            tracker.log(deployment_id, "INFO", "Project marked as published", step=3)

            result = {
                "url": url,
                "previewUrl": get_preview_url(project["slug"]),
                "files": len(files)
            }
            tracker.set_result(deployment_id, result)
            logger.info(f"✓ Published project {project_id}: {url}")
            return result

        except Exception as e:
            logger.exception(f"Publish failed for project {project_id}: {e}")
            tracker.log(deployment_id, "ERROR", str(e))
            tracker.set_error(deployment_id, str(e))
            return None

        finally:
            with self.lock:
                self.threads.pop(deployment_id, None)
