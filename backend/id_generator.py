"""Generates record IDs and URL slugs."""

import logging
import re
import uuid

logger = logging.getLogger(__name__)

# Valid ID pattern: 32 hexadecimal characters
ID_PATTERN = re.compile(r'^[a-f0-9]{32}$')


def generate_id() -> str:
    """
    Generate a new random record ID.

    Returns:
        32-character hexadecimal ID string
    """
    return uuid.uuid4().hex


def is_valid_id(record_id: str) -> bool:
    """
    Validate ID format to prevent path traversal attacks.

    Args:
        record_id: String to validate

    Returns:
        True if valid 32-character hex string, False otherwise
    """
    if not record_id or not isinstance(record_id, str):
        return False
    return bool(ID_PATTERN.match(record_id))


def slugify(name: str) -> str:
    """
    Build a project slug from its name.

    Lowercases, turns every run of characters outside [a-z0-9]
    into a single hyphen and trims hyphens from both ends.

    Args:
        name: Project name

    Returns:
        Slug string (may be empty for names without any letters or digits)
    """
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower())
    return slug.strip('-')


def slugify_title(title: str) -> str:
    """
    Build a page slug from a page title.

    Special characters are dropped rather than replaced, so
    "Hello, World!" becomes "hello-world".

    Args:
        title: Page title

    Returns:
        Slug string
    """
    slug = re.sub(r'[^a-z0-9\s-]', '', title.lower())
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip().strip('-')


def unique_slug(base_slug: str, taken) -> str:
    """
    Append -1, -2, ... to a slug until it is not in ``taken``.

    Args:
        base_slug: Preferred slug
        taken: Container of slugs already in use

    Returns:
        First free slug
    """
    slug = base_slug
    counter = 1
    while slug in taken:
        slug = f"{base_slug}-{counter}"
        counter += 1
    if slug != base_slug:
        logger.debug(f"Slug '{base_slug}' taken, using '{slug}'")
    return slug
