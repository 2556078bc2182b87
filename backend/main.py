"""FastAPI backend for the static site manager with live preview WebSocket support."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from asset_store import AssetStore
from config import API_HOST, API_PORT, CORS_ORIGINS, PREVIEW_WS_PORT, print_config, setup_logging
from errors import InvalidRequestError, NotFoundError, SiteBuilderError
from exporter import build_export_archive, export_filename
from id_generator import slugify_title
from models import MemberRole
from page_store import PageStore
from preview_renderer import render_preview_document, render_public_page, render_standalone_document
from preview_server import get_server, start_preview_server, stop_preview_server
from project_store import ProjectStore
from publish_worker import PublishWorker
from template_store import TemplateStore
from user_manager import UserManager

setup_logging()
logger = logging.getLogger(__name__)

# Initialize managers (will be replaced by init_managers for testing)
user_manager = UserManager()
template_store = TemplateStore()
page_store = PageStore()
asset_store = AssetStore()
project_store = ProjectStore(page_store=page_store)
publish_worker = PublishWorker(project_store, page_store, asset_store)


def init_managers(um, ps, pgs, ast, ts, pw=None):
    """Initialize managers for testing.

    Args:
        um: UserManager instance or mock
        ps: ProjectStore instance or mock
        pgs: PageStore instance or mock
        ast: AssetStore instance or mock
        ts: TemplateStore instance or mock
        pw: PublishWorker instance or mock (optional)
    """
    global user_manager, project_store, page_store, asset_store, template_store, publish_worker
    user_manager = um
    project_store = ps
    page_store = pgs
    asset_store = ast
    template_store = ts
    if pw is not None:
        publish_worker = pw


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    logger.info(f"Starting Preview WebSocket server on port {PREVIEW_WS_PORT}...")
    await start_preview_server(project_store, page_store, user_manager, port=PREVIEW_WS_PORT)
    logger.info("Preview WebSocket server started")
    yield
    logger.info("Stopping Preview WebSocket server...")
    await stop_preview_server()
    logger.info("Preview WebSocket server stopped")


app = FastAPI(title="Static Site Manager API", version="1.0.0", lifespan=lifespan)

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SiteBuilderError)
async def site_builder_error_handler(request: Request, exc: SiteBuilderError):
    """Map store and service errors to JSON error responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def get_current_user(x_user_id: Optional[str] = Header(None)) -> dict:
    """Resolve the requesting user from the X-User-Id header."""
    return user_manager.require_user(x_user_id)


# Request models
class UserCreateRequest(BaseModel):
    email: str
    name: Optional[str] = None


class ProjectCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    templateId: Optional[str] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    domain: Optional[str] = None
    status: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class MemberRequest(BaseModel):
    """Add a member by user id or by email."""
    userId: Optional[str] = None
    email: Optional[str] = None
    role: MemberRole = MemberRole.EDITOR


class PageCreateRequest(BaseModel):
    title: str
    slug: Optional[str] = None
    content: str = ""
    htmlContent: Optional[str] = None
    cssContent: Optional[str] = None
    jsContent: Optional[str] = None
    metaTitle: Optional[str] = None
    metaDesc: Optional[str] = None
    keywords: Optional[str] = None
    isHomePage: bool = False


class PageUpdateRequest(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    content: Optional[str] = None
    htmlContent: Optional[str] = None
    cssContent: Optional[str] = None
    jsContent: Optional[str] = None
    metaTitle: Optional[str] = None
    metaDesc: Optional[str] = None
    keywords: Optional[str] = None
    status: Optional[str] = None
    isHomePage: Optional[bool] = None


class AssetUpdateRequest(BaseModel):
    folder: Optional[str] = None
    alt: Optional[str] = None


class TemplateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    htmlContent: Optional[str] = None
    cssContent: Optional[str] = None
    jsContent: Optional[str] = None
    isPublic: Optional[bool] = None


class PreviewRenderRequest(BaseModel):
    htmlContent: str = ""
    cssContent: str = ""
    jsContent: str = ""
    standalone: bool = False


def with_owner(record: dict) -> dict:
    """Attach the public profile of the record's user."""
    return {**record, "user": user_manager.public_profile(record.get("userId"))}


def with_member_profiles(project: dict) -> dict:
    members = [
        {**member, "user": user_manager.public_profile(member["userId"])}
        for member in project.get("members", [])
    ]
    return {**with_owner(project), "members": members}


def project_summary(project: dict) -> dict:
    """Project as shown in listings: counts and a page summary."""
    pages = page_store.list_pages(project["id"])
    return {
        **with_member_profiles(project),
        "pages": [
            {key: page.get(key) for key in ("id", "title", "slug", "status", "updatedAt")}
            for page in pages
        ],
        "pageCount": len(pages),
        "assetCount": asset_store.count_assets(project["id"]),
    }


# API Endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    logger.info("Root endpoint called")
    return {"message": "Static Site Manager API", "version": "1.0.0"}


# Users
@app.post("/api/users", status_code=201)
async def register_user(request: UserCreateRequest):
    """Register a user, or return the existing user for this email."""
    result = user_manager.create_user(request.email, name=request.name)
    return {**result["user"], "isNew": result["is_new"]}


@app.get("/api/users/me")
async def get_me(user: dict = Depends(get_current_user)):
    return user


# Projects
@app.get("/api/projects")
async def list_projects(user: dict = Depends(get_current_user)):
    """Projects the user owns or is a member of, most recently updated first."""
    return [project_summary(project) for project in project_store.list_projects(user["id"])]


@app.post("/api/projects", status_code=201)
async def create_project(request: ProjectCreateRequest, user: dict = Depends(get_current_user)):
    """Create a project with its home page (from a template when one is given)."""
    template = template_store.find_template(request.templateId)
    project = project_store.create_project(
        user["id"], request.name, description=request.description, template=template
    )
    return project_summary(project)


@app.get("/api/projects/{project_id}")
async def get_project(project_id: str, user: dict = Depends(get_current_user)):
    """Project with pages, assets and its most recent deployments."""
    project = project_store.get_for_viewer(project_id, user["id"])
    return {
        **with_member_profiles(project),
        "pages": [with_owner(page) for page in page_store.list_pages(project_id)],
        "assets": [with_owner(asset) for asset in asset_store.list_assets(project_id)],
        "deployments": publish_worker.tracker.list_deployments(project_id),
    }


@app.put("/api/projects/{project_id}")
async def update_project(
    project_id: str,
    request: ProjectUpdateRequest,
    user: dict = Depends(get_current_user)
):
    changes = request.model_dump(exclude_unset=True)
    project = project_store.update_project(project_id, user["id"], changes)
    return project_summary(project)


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str, user: dict = Depends(get_current_user)):
    """Delete a project with its pages, assets and uploaded files (owner only)."""
    project_store.delete_project(project_id, user["id"])
    asset_store.delete_project_uploads(project_id)
    return {"message": "Project deleted successfully"}


@app.post("/api/projects/{project_id}/members", status_code=201)
async def add_member(project_id: str, request: MemberRequest, user: dict = Depends(get_current_user)):
    """Add a collaborator by user id or email (owner only)."""
    if request.userId:
        member = user_manager.get_user(request.userId)
    elif request.email:
        member = user_manager.get_user_by_email(request.email)
    else:
        raise InvalidRequestError("userId or email is required")
    if member is None:
        raise NotFoundError("User not found")

    project = project_store.add_member(project_id, user["id"], member["id"], request.role)
    return with_member_profiles(project)


@app.delete("/api/projects/{project_id}/members/{member_id}")
async def remove_member(project_id: str, member_id: str, user: dict = Depends(get_current_user)):
    project = project_store.remove_member(project_id, user["id"], member_id)
    return with_member_profiles(project)


# Pages
@app.get("/api/projects/{project_id}/pages")
async def list_pages(project_id: str, user: dict = Depends(get_current_user)):
    """Pages of a project, home page first."""
    project_store.get_for_viewer(project_id, user["id"])
    return [with_owner(page) for page in page_store.list_pages(project_id)]


@app.post("/api/projects/{project_id}/pages", status_code=201)
async def create_page(project_id: str, request: PageCreateRequest, user: dict = Depends(get_current_user)):
    project_store.get_for_editor(project_id, user["id"])
    data = request.model_dump()
    if not data["slug"]:
        data["slug"] = slugify_title(request.title)
    page = page_store.create_page(project_id, user["id"], data)
    project_store.touch(project_id)
    return with_owner(page)


@app.get("/api/projects/{project_id}/pages/{page_id}")
async def get_page(project_id: str, page_id: str, user: dict = Depends(get_current_user)):
    project_store.get_for_viewer(project_id, user["id"])
    return with_owner(page_store.get_page(project_id, page_id))


@app.put("/api/projects/{project_id}/pages/{page_id}")
async def update_page(
    project_id: str,
    page_id: str,
    request: PageUpdateRequest,
    user: dict = Depends(get_current_user)
):
    project_store.get_for_editor(project_id, user["id"])
    page = page_store.update_page(project_id, page_id, request.model_dump(exclude_unset=True))
    project_store.touch(project_id)
    preview_server = get_server()
    if preview_server is not None:
        await preview_server.page_changed(project_id, page)
    return with_owner(page)


@app.delete("/api/projects/{project_id}/pages/{page_id}")
async def delete_page(project_id: str, page_id: str, user: dict = Depends(get_current_user)):
    project_store.get_for_editor(project_id, user["id"])
    page_store.delete_page(project_id, page_id)
    project_store.touch(project_id)
    preview_server = get_server()
    if preview_server is not None:
        await preview_server.page_removed(project_id, page_id)
    return {"message": "Page deleted successfully"}


# Assets
@app.get("/api/projects/{project_id}/assets")
async def list_assets(
    project_id: str,
    folder: Optional[str] = None,
    asset_type: Optional[str] = Query(None, alias="type"),
    user: dict = Depends(get_current_user)
):
    """Assets of a project, newest first, optionally filtered by folder and type."""
    project_store.get_for_viewer(project_id, user["id"])
    return [with_owner(asset) for asset in asset_store.list_assets(project_id, folder=folder, asset_type=asset_type)]


@app.post("/api/projects/{project_id}/assets", status_code=201)
async def upload_asset(
    project_id: str,
    file: Optional[UploadFile] = File(None),
    folder: Optional[str] = Form(None),
    alt: Optional[str] = Form(None),
    user: dict = Depends(get_current_user)
):
    """Upload a file (multipart field "file") into a project."""
    project_store.get_for_editor(project_id, user["id"])
    if file is None:
        raise InvalidRequestError("No file provided")

    data = await file.read()
    asset = asset_store.upload_asset(
        project_id,
        user["id"],
        file.filename,
        file.content_type,
        data,
        folder=folder,
        alt=alt
    )
    return with_owner(asset)


@app.get("/api/projects/{project_id}/assets/{asset_id}")
async def get_asset(project_id: str, asset_id: str, user: dict = Depends(get_current_user)):
    project_store.get_for_viewer(project_id, user["id"])
    return with_owner(asset_store.get_asset(project_id, asset_id))


@app.put("/api/projects/{project_id}/assets/{asset_id}")
async def update_asset(
    project_id: str,
    asset_id: str,
    request: AssetUpdateRequest,
    user: dict = Depends(get_current_user)
):
    project_store.get_for_editor(project_id, user["id"])
    asset = asset_store.update_asset(project_id, asset_id, folder=request.folder, alt=request.alt)
    return with_owner(asset)


@app.delete("/api/projects/{project_id}/assets/{asset_id}")
async def delete_asset(project_id: str, asset_id: str, user: dict = Depends(get_current_user)):
    project_store.get_for_editor(project_id, user["id"])
    asset_store.delete_asset(project_id, asset_id)
    return {"message": "Asset deleted successfully"}


# Export and publish
@app.get("/api/projects/{project_id}/export")
async def export_project(project_id: str, user: dict = Depends(get_current_user)):
    """Download the project as a zip of static files (owner only)."""
    project = project_store.get_for_owner(project_id, user["id"])
    archive = build_export_archive(
        project,
        page_store.list_pages_by_creation(project_id),
        asset_store.list_assets(project_id),
        asset_store.read_asset_bytes
    )
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(project)}"'}
    )


@app.post("/api/projects/{project_id}/publish", status_code=202)
async def publish_project(project_id: str, user: dict = Depends(get_current_user)):
    """
    Start publishing a project.

    Returns immediately with the deployment id. Publishing runs in background.
    """
    project_store.get_for_editor(project_id, user["id"])
    deployment_id = publish_worker.start_publish(project_id, user["id"])
    return {
        "success": True,
        "deploymentId": deployment_id,
        "message": "Publish started"
    }


@app.get("/api/projects/{project_id}/deployments")
async def list_deployments(project_id: str, user: dict = Depends(get_current_user)):
    project_store.get_for_viewer(project_id, user["id"])
    return publish_worker.tracker.list_deployments(project_id)


# Templates
@app.get("/api/templates")
async def list_templates(category: Optional[str] = None, user: dict = Depends(get_current_user)):
    return template_store.list_templates(category=category)


@app.post("/api/templates", status_code=201)
async def create_template(request: TemplateRequest, user: dict = Depends(get_current_user)):
    return template_store.create_template(request.model_dump(exclude_none=True))


@app.get("/api/templates/{template_id}")
async def get_template(template_id: str, user: dict = Depends(get_current_user)):
    return template_store.get_template(template_id)


@app.put("/api/templates/{template_id}")
async def update_template(template_id: str, request: TemplateRequest, user: dict = Depends(get_current_user)):
    return template_store.update_template(template_id, request.model_dump(exclude_unset=True))


@app.delete("/api/templates/{template_id}")
async def delete_template(template_id: str, user: dict = Depends(get_current_user)):
    template_store.delete_template(template_id)
    return {"message": "Template deleted successfully"}


# Preview
@app.post("/api/preview/render", response_class=HTMLResponse)
async def render_preview(request: PreviewRenderRequest, user: dict = Depends(get_current_user)):
    """Render editor buffers into a preview document (standalone drops the console bridge)."""
    render = render_standalone_document if request.standalone else render_preview_document
    return HTMLResponse(render(request.htmlContent, request.cssContent, request.jsContent))


@app.get("/preview/{slug}", response_class=HTMLResponse)
async def preview_project(slug: str):
    """Public home page of a published project."""
    project = project_store.find_published_by_slug(slug)
    pages: List[dict] = page_store.list_pages_by_creation(project["id"])
    home_page = page_store.get_home_page(project["id"])
    return HTMLResponse(render_public_page(project, home_page, pages))


@app.get("/preview/{slug}/{page_slug}", response_class=HTMLResponse)
async def preview_page(slug: str, page_slug: str):
    """Public page of a published project."""
    project = project_store.find_published_by_slug(slug)
    pages = page_store.list_pages_by_creation(project["id"])
    page = page_store.get_page_by_slug(project["id"], page_slug)
    return HTMLResponse(render_public_page(project, page, pages, show_page_in_title=True))


@app.get("/uploads/{project_id}/{filename}")
async def get_upload(project_id: str, filename: str):
    """Stored bytes of an uploaded asset."""
    asset = asset_store.find_by_filename(project_id, filename)
    data = asset_store.read_asset_bytes(asset)
    if data is None:
        raise NotFoundError("File not found")
    return Response(content=data, media_type=asset["mimeType"])


if __name__ == "__main__":
    import uvicorn

    print_config()
    logger.info("Starting Uvicorn server...")

    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level="info")
