"""
Editor Session

Server-side state of one browser editing session:
- Open tabs, each holding the HTML/CSS/JS buffers of a page
- The active buffer and per-page dirty flags
- Debounced re-rendering of the live preview
- Console messages relayed out of the sandboxed preview frame
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set

from config import CONSOLE_HISTORY_LIMIT, PREVIEW_DEBOUNCE_SECONDS, VIEWPORT_SIZES
from errors import InvalidRequestError
from models import EditorFile
from preview_renderer import render_preview_document, render_standalone_document

logger = logging.getLogger(__name__)

CONSOLE_LEVELS = ["log", "error", "warn", "info"]

# Page fields copied into a tab
TAB_FIELDS = ["id", "title", "slug", "htmlContent", "cssContent", "jsContent", "isHomePage"]


class Debouncer:
    """
    Runs an async callback once activity has been quiet for ``delay`` seconds.

    Every trigger() restarts the timer, so a burst of triggers
    results in a single call.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float = PREVIEW_DEBOUNCE_SECONDS):
        self.callback = callback
        self.delay = delay
        self._task: Optional[asyncio.Task] = None

    def trigger(self) -> None:
        """Schedule the callback, cancelling any pending run."""
        self.cancel()
        self._task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"Debounced callback failed: {e}")

    def cancel(self) -> None:
        """Drop the pending run, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()


class EditorSession:
    """Tabs, buffers, preview and console state for one project being edited."""

    def __init__(self, project_id: str, page_store=None, console_limit: int = CONSOLE_HISTORY_LIMIT):
        self.project_id = project_id
        self.page_store = page_store
        self.tabs: List[Dict] = []
        self.current_page_id: Optional[str] = None
        self.active_file = EditorFile.HTML
        self.dirty: Set[str] = set()
        self.viewport = "desktop"
        self.console_messages: Deque[Dict] = deque(maxlen=console_limit)
        self.has_error = False

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def _find_tab(self, page_id: str) -> Optional[Dict]:
        for tab in self.tabs:
            if tab["id"] == page_id:
                return tab
        return None

    @property
    def current_tab(self) -> Optional[Dict]:
        if self.current_page_id is None:
            return None
        return self._find_tab(self.current_page_id)

    def open_tab(self, page: dict) -> Dict:
        """
        Open a page in a tab and make it current.

        A page that is already open keeps its buffers (unsaved edits
        are not replaced by the stored version).
        """
        tab = self._find_tab(page["id"])
        if tab is None:
            tab = {field: page.get(field) for field in TAB_FIELDS}
            for kind in EditorFile:
                tab[kind.field] = tab.get(kind.field) or ""
            self.tabs.append(tab)
            logger.debug(f"[{self.project_id}] Opened tab {page['id']}")
        self.current_page_id = tab["id"]
        return tab

    def close_tab(self, page_id: str) -> None:
        """
        Close a tab. When it was current, the last remaining tab becomes current.
        """
        self.tabs = [tab for tab in self.tabs if tab["id"] != page_id]
        self.dirty.discard(page_id)
        if self.current_page_id == page_id:
            self.current_page_id = self.tabs[-1]["id"] if self.tabs else None

    def refresh_tab(self, page: dict) -> bool:
        """
        Take a page stored elsewhere (REST update) into its open tab.

        Title, slug and home page flag always follow the stored page;
        buffers are replaced only when the tab has no unsaved edits.

        Returns:
            True when the page is open in this session
        """
        tab = self._find_tab(page["id"])
        if tab is None:
            return False
        for field in ("title", "slug", "isHomePage"):
            tab[field] = page.get(field)
        if page["id"] not in self.dirty:
            for kind in EditorFile:
                tab[kind.field] = page.get(kind.field) or ""
        return True

    def select_tab(self, page_id: str) -> None:
        """Make an open tab current."""
        if self._find_tab(page_id) is None:
            raise InvalidRequestError("Page is not open")
        self.current_page_id = page_id

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def select_file(self, kind: str) -> None:
        """Switch the active buffer (html, css or js)."""
        try:
            self.active_file = EditorFile(kind)
        except ValueError:
            raise InvalidRequestError(f"Unknown editor file: {kind}")

    def edit(self, content: str) -> bool:
        """
        Replace the active buffer of the current page.

        Returns:
            False when no tab is open, True otherwise
        """
        tab = self.current_tab
        if tab is None:
            return False
        tab[self.active_file.field] = content or ""
        self.dirty.add(tab["id"])
        return True

    def editor_content(self) -> str:
        """Content of the active buffer of the current page."""
        tab = self.current_tab
        if tab is None:
            return ""
        return tab.get(self.active_file.field) or ""

    def editor_language(self) -> str:
        """Code editor language of the active buffer."""
        return self.active_file.language

    def is_dirty(self, page_id: Optional[str] = None) -> bool:
        return (page_id or self.current_page_id) in self.dirty

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def set_viewport(self, name: str) -> None:
        """Switch the preview frame size."""
        if name not in VIEWPORT_SIZES:
            raise InvalidRequestError(f"Unknown viewport: {name}")
        self.viewport = name

    def render(self) -> Optional[str]:
        """
        Render the preview document of the current page.

        A new document means a fresh frame, so the console buffer and
        error flag are reset. Returns None when no tab is open or
        rendering failed.
        """
        tab = self.current_tab
        if tab is None:
            return None

        self.console_messages.clear()
        self.has_error = False
        try:
            return render_preview_document(tab["htmlContent"], tab["cssContent"], tab["jsContent"])
        except Exception as e:
            self.has_error = True
            logger.error(f"[{self.project_id}] Preview update error: {e}")
            return None

    def render_standalone(self) -> Optional[str]:
        """Render the current page for viewing outside the editor."""
        tab = self.current_tab
        if tab is None:
            return None
        return render_standalone_document(tab["htmlContent"], tab["cssContent"], tab["jsContent"])

    # ------------------------------------------------------------------
    # Console
    # ------------------------------------------------------------------

    def record_console(self, level: str, message: str, timestamp: Optional[float] = None) -> Dict:
        """
        Store a console message relayed from the preview frame.

        Only the most recent messages are kept; an error sets has_error.
        """
        if level not in CONSOLE_LEVELS:
            level = "log"
        entry = {
            "type": level,
            "message": str(message),
            "timestamp": timestamp if timestamp is not None else int(time.time() * 1000)
        }
        self.console_messages.append(entry)
        if level == "error":
            self.has_error = True
        return entry

    def clear_console(self) -> None:
        self.console_messages.clear()
        self.has_error = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> Optional[dict]:
        """
        Persist the buffers of the current page.

        Returns:
            The stored page record, or None when no tab is open
        """
        tab = self.current_tab
        if tab is None:
            return None
        if self.page_store is None:
            raise RuntimeError("EditorSession has no page store")

        page = self.page_store.update_page(self.project_id, tab["id"], {
            "htmlContent": tab["htmlContent"],
            "cssContent": tab["cssContent"],
            "jsContent": tab["jsContent"],
        })
        self.dirty.discard(tab["id"])
        logger.info(f"[{self.project_id}] Saved page {tab['id']}")
        return page

    def snapshot(self) -> Dict:
        """Serializable view of the session for the editor UI."""
        return {
            "projectId": self.project_id,
            "tabs": [
                {"id": t["id"], "title": t["title"], "slug": t["slug"], "dirty": t["id"] in self.dirty}
                for t in self.tabs
            ],
            "currentPageId": self.current_page_id,
            "activeFile": self.active_file.value,
            "language": self.editor_language(),
            "content": self.editor_content(),
            "viewport": self.viewport,
            "viewportSize": VIEWPORT_SIZES[self.viewport],
            "hasError": self.has_error,
            "consoleCount": len(self.console_messages),
        }
