"""
Exporter

Packs a project into a static website bundle:

    index.html            home page (slug "index")
    <slug>.html           every other page
    assets/<filename>     uploaded files
    README.md             deployment and local-run notes

The bundle is produced either as zip bytes (download) or written into a
directory (publishing).
"""

import io
import logging
import re
import zipfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from errors import ExportError
from preview_renderer import render_export_document

logger = logging.getLogger(__name__)

ASSETS_FOLDER = "assets"

README_TEMPLATE = """# {name}

{description}

## Project Structure

- **HTML Files**: Main pages of your website
- **assets/**: Static assets (images, CSS, JavaScript files)

## Deployment

You can deploy this static website to any web hosting service:

1. **Netlify**: Drag and drop this folder to netlify.com/drop
2. **Vercel**: Use the Vercel CLI or connect your Git repository
3. **GitHub Pages**: Upload to a GitHub repository and enable Pages
4. **Traditional Hosting**: Upload files via FTP to your web server

## Local Development

To run locally, simply open the HTML files in your web browser or use a local server:

```bash
# Using Python
python -m http.server 8000

# Using Node.js
npx serve .
```

Generated on: {generated_at}
Project ID: {project_id}
"""

# Returns the stored bytes of an asset record, or None when the file is gone
AssetReader = Callable[[dict], Optional[bytes]]


def page_filename(page: dict) -> str:
    """File name of a page inside the bundle."""
    return "index.html" if page.get("slug") == "index" else f"{page['slug']}.html"


def export_filename(project: dict) -> str:
    """Download name of a project's archive."""
    base = project.get("slug") or re.sub(r"\s+", "-", (project.get("name") or "").lower())
    return f"{base or 'project'}.zip"


def check_bundle_path(name: str) -> str:
    """Reject bundle paths that would land outside the site root."""
    path = PurePosixPath(name)
    if not name or "\\" in name or path.is_absolute() or ".." in path.parts:
        raise ExportError(f"Invalid file name in export: {name}")
    return name


def render_readme(project: dict) -> str:
    return README_TEMPLATE.format(
        name=project.get("name", ""),
        description=project.get("description") or "No description provided.",
        generated_at=datetime.now(timezone.utc).isoformat(),
        project_id=project["id"],
    )


def iter_site_files(
    project: dict,
    pages: List[dict],
    assets: List[dict],
    read_asset: AssetReader
) -> Iterator[Tuple[str, bytes]]:
    """
    Yield (relative path, content) for every file of the bundle.

    Assets whose stored file is missing are logged and skipped.
    """
    for page in pages:
        document = render_export_document(page, project.get("name", ""))
        yield check_bundle_path(page_filename(page)), document.encode("utf-8")

    for asset in assets:
        if not asset.get("url"):
            continue
        data = read_asset(asset)
        if data is None:
            logger.warning(f"Skipping asset {asset.get('filename')} of project {project['id']}: file missing")
            continue
        yield check_bundle_path(f"{ASSETS_FOLDER}/{asset['filename']}"), data

    yield "README.md", render_readme(project).encode("utf-8")


def build_export_archive(
    project: dict,
    pages: List[dict],
    assets: List[dict],
    read_asset: AssetReader
) -> bytes:
    """
    Build the zip archive of a project.

    Args:
        project: Project record
        pages: Page records of the project
        assets: Asset records of the project
        read_asset: Callable returning an asset's stored bytes

    Returns:
        Zip file contents

    Raises:
        ExportError: if the archive could not be built
    """
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, content in iter_site_files(project, pages, assets, read_asset):
                archive.writestr(name, content)
    except (OSError, zipfile.BadZipFile) as e:
        logger.error(f"Export error for project {project.get('id')}: {e}")
        raise ExportError("Failed to export project")

    data = buffer.getvalue()
    logger.info(f"Exported project {project['id']} ({len(pages)} pages, {len(assets)} assets, {len(data)} bytes)")
    return data


def write_site(
    directory: Path,
    project: dict,
    pages: List[dict],
    assets: List[dict],
    read_asset: AssetReader
) -> Dict[str, int]:
    """
    Write the bundle of a project into a directory.

    Returns:
        Map of relative path -> bytes written

    Raises:
        ExportError: if a file would be written outside the directory
    """
    directory = Path(directory).resolve()
    written = {}
    for name, content in iter_site_files(project, pages, assets, read_asset):
        target = (directory / name).resolve()
        if directory not in target.parents:
            raise ExportError(f"Invalid file name in export: {name}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        written[name] = len(content)
    return written
