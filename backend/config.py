"""
Configuration Module for the Static Site Manager Backend

This module provides centralized configuration.
All paths, limits, and server settings are defined here.
"""

import os
from pathlib import Path
from typing import Dict

# ==============================================
# BASE PATHS
# ==============================================

# Base directory (backend folder)
BASE_DIR = Path(__file__).parent.resolve()

# Project root (parent of backend)
PROJECT_ROOT = BASE_DIR.parent

# Data directory - every stored record lives below it
DATA_DIR = Path(os.getenv('SITE_DATA_DIR', str(PROJECT_ROOT / "data"))).resolve()

PROJECTS_DIR = DATA_DIR / "projects"
USERS_DIR = DATA_DIR / "users"
TEMPLATES_DIR = DATA_DIR / "templates"
DEPLOYMENTS_DIR = DATA_DIR / "deployments"
UPLOADS_DIR = DATA_DIR / "uploads"

# Ensure directories exist
for _directory in (PROJECTS_DIR, USERS_DIR, TEMPLATES_DIR, DEPLOYMENTS_DIR, UPLOADS_DIR):
    _directory.mkdir(parents=True, exist_ok=True)

# ==============================================
# RECORD FILES
# ==============================================

PROJECT_FILE = "project.json"
PAGES_DIR_NAME = "pages"
ASSETS_DIR_NAME = "assets"
USER_REGISTRY_FILE = "registry.json"

# ==============================================
# UPLOAD CONFIGURATION
# ==============================================

# Maximum asset upload size (10MB)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', str(10 * 1024 * 1024)))

# Public URL prefix for uploaded files
UPLOADS_URL_PREFIX = "/uploads"

# ==============================================
# LIVE PREVIEW CONFIGURATION
# ==============================================

# Delay between the last edit and the preview re-render (seconds)
PREVIEW_DEBOUNCE_SECONDS = float(os.getenv('PREVIEW_DEBOUNCE_SECONDS', '0.3'))

# Console messages kept per editing session
CONSOLE_HISTORY_LIMIT = int(os.getenv('CONSOLE_HISTORY_LIMIT', '50'))

# Preview WebSocket port (editor <-> preview relay)
PREVIEW_WS_PORT = int(os.getenv('PREVIEW_WS_PORT', '8082'))

# Preview frame sizes per viewport
VIEWPORT_SIZES: Dict[str, Dict[str, str]] = {
    'desktop': {'width': '100%', 'height': '100%', 'label': 'Desktop'},
    'tablet': {'width': '768px', 'height': '1024px', 'label': 'Tablet'},
    'mobile': {'width': '375px', 'height': '667px', 'label': 'Mobile'},
}

# ==============================================
# PUBLISH CONFIGURATION
# ==============================================

# Deployments shown with a project
RECENT_DEPLOYMENTS_LIMIT = 5

# Target bucket for published sites (empty = publish to the built-in preview only)
PUBLISH_BUCKET = os.getenv('PUBLISH_BUCKET', '')
AWS_PROFILE = os.getenv('AWS_PROFILE') or None
AWS_DEFAULT_REGION = os.getenv('AWS_DEFAULT_REGION', 'us-east-1')

# ==============================================
# SERVER CONFIGURATION
# ==============================================

API_PORT = int(os.getenv('BACKEND_PORT', '8000'))
API_HOST = os.getenv('API_HOST', '0.0.0.0')

# Public base URL used for preview links
BASE_URL = os.getenv('BASE_URL', '')

# CORS origins (comma-separated in the environment)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv('CORS_ORIGINS', ','.join(DEFAULT_CORS_ORIGINS)).split(',')
    if origin.strip()
]

# Logging level
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# ==============================================
# LOGGING CONFIGURATION
# ==============================================

LOG_DIR = DATA_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "site-manager.log"

def setup_logging():
    """Configure centralized logging to both console and file."""
    import logging
    from logging.handlers import RotatingFileHandler

    # Create formatter
    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL))

    # Clear existing handlers
    root_logger.handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, LOG_LEVEL))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (rotating, max 10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=10*1024*1024,
        backupCount=5
    )
    file_handler.setLevel(getattr(logging, LOG_LEVEL))
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Reduce noise from websockets and AWS libraries - only show WARNING+
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('websockets.server').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)

    logging.info(f"Logging initialized - Console + File: {LOG_FILE}")

# ==============================================
# HELPER FUNCTIONS
# ==============================================

def get_base_url() -> str:
    """Get the public base URL of the application."""
    if BASE_URL:
        return BASE_URL.rstrip('/')
    host = 'localhost' if API_HOST in ('0.0.0.0', '') else API_HOST
    return f"http://{host}:{API_PORT}"

def get_preview_url(slug: str) -> str:
    """Public preview URL for a project."""
    return f"{get_base_url()}/preview/{slug}"

def print_config():
    """Print current configuration."""
    print("=" * 60)
    print("Static Site Manager Configuration")
    print("=" * 60)
    print(f"Data Directory:      {DATA_DIR}")
    print(f"Max Upload Size:     {MAX_UPLOAD_SIZE} bytes")
    print(f"Preview WS Port:     {PREVIEW_WS_PORT}")
    print(f"Publish Bucket:      {PUBLISH_BUCKET or '(preview only)'}")
    print(f"Backend Port:        {API_PORT}")
    print(f"Log Level:           {LOG_LEVEL}")
    print("=" * 60)
