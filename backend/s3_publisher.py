"""S3 Publisher for static site hosting of published projects.

Uploads an exported site directory to the publish bucket, one key
prefix per project slug, using the configured AWS profile.
"""

import boto3
import logging
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional, Any

from config import AWS_DEFAULT_REGION, AWS_PROFILE, PUBLISH_BUCKET
from errors import PublishError

logger = logging.getLogger(__name__)


class S3Publisher:
    """Publish exported sites to an S3 bucket.

    Every object is tagged with the project it belongs to.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        profile: Optional[str] = None
    ):
        """Initialize the publisher.

        Args:
            bucket: Target bucket (defaults to PUBLISH_BUCKET)
            region: AWS region (defaults to AWS_DEFAULT_REGION)
            profile: AWS profile name (defaults to AWS_PROFILE)
        """
        self.bucket = bucket or PUBLISH_BUCKET
        self.region = region or AWS_DEFAULT_REGION
        self.profile = profile or AWS_PROFILE

        # Lazy-loaded clients
        self._session: Optional[boto3.Session] = None
        self._s3_client = None

    @property
    def s3_client(self):
        """Lazy-loaded S3 client with profile authentication."""
        if self._s3_client is None:
            if self._session is None:
                self._session = boto3.Session(profile_name=self.profile, region_name=self.region)
            self._s3_client = self._session.client("s3")
        return self._s3_client

    def site_url(self, prefix: str) -> str:
        """Public website URL of an uploaded site."""
        return f"http://{self.bucket}.s3-website-{self.region}.amazonaws.com/{prefix}/"

    def publish(self, source_dir: str, project: Dict[str, Any]) -> Dict[str, Any]:
        """Upload a site directory under the project's slug.

        Args:
            source_dir: Directory holding the exported site
            project: Project record (slug and id are used)

        Returns:
            Dictionary with:
            - url: public URL of the site
            - bucket: bucket name
            - prefix: key prefix of the site
            - files: uploaded keys
        """
        if not self.bucket:
            raise PublishError("No publish bucket configured")

        prefix = project["slug"]
        tagging = f"project_id={project['id']}&project_slug={prefix}"
        try:
            keys = self._upload_files(source_dir, prefix, tagging)
        except Exception as e:
            logger.error(f"Upload of {prefix} to s3://{self.bucket} failed: {e}")
            raise PublishError(f"Upload failed: {e}")

        logger.info(f"Uploaded {len(keys)} files to s3://{self.bucket}/{prefix}/")
        return {
            "url": self.site_url(prefix),
            "bucket": self.bucket,
            "prefix": prefix,
            "files": keys
        }

    def _upload_files(self, source_dir: str, prefix: str, tagging: str) -> List[str]:
        """Upload all files from source directory under a key prefix.

        Recursively uploads all files, preserving directory structure
        and setting appropriate content-types.

        Returns:
            List of uploaded file keys
        """
        source_path = Path(source_dir)
        uploaded_keys = []

        for file_path in sorted(source_path.rglob("*")):
            if file_path.is_file():
                relative_path = file_path.relative_to(source_path).as_posix()
                s3_key = f"{prefix}/{relative_path}"

                # Determine content type
                content_type, _ = mimetypes.guess_type(str(file_path))
                if content_type is None:
                    content_type = "application/octet-stream"

                self.s3_client.put_object(
                    Bucket=self.bucket,
                    Key=s3_key,
                    Body=file_path.read_bytes(),
                    ContentType=content_type,
                    Tagging=tagging
                )

                uploaded_keys.append(s3_key)

        return uploaded_keys
