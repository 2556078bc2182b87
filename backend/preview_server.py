"""
WebSocket server for the live preview of the browser editor.

This server:
- Listens on PREVIEW_WS_PORT for WebSocket connections
- Uses path-based routing: /ws/<project_id>?user=<user_id>
- Keeps one EditorSession per project, shared by its subscribers
- Re-renders the preview (debounced) after edits and broadcasts it
- Relays console messages captured inside the preview frame
"""

import asyncio
import json
import logging
from typing import Dict, Optional, Set
from urllib.parse import parse_qs, urlsplit

import websockets
import websockets.exceptions

from access import can_edit
from config import PREVIEW_DEBOUNCE_SECONDS, PREVIEW_WS_PORT
from editor_session import Debouncer, EditorSession
from errors import NotFoundError, SiteBuilderError
from project_store import NOT_FOUND_OR_FORBIDDEN

# Use centralized logging (configured in config.py)
logger = logging.getLogger(__name__)


class PreviewWebSocketServer:
    """
    WebSocket server for live preview sessions.

    Handles:
    - Editor connections (subscribe to a project)
    - Tab, buffer and viewport commands from the editor
    - Console messages relayed from the preview frame
    - Broadcasting state, preview and console updates to subscribers
    """

    def __init__(
        self,
        project_store,
        page_store,
        user_manager,
        host: str = "0.0.0.0",
        port: int = PREVIEW_WS_PORT,
        debounce_seconds: float = PREVIEW_DEBOUNCE_SECONDS
    ):
        self.project_store = project_store
        self.page_store = page_store
        self.user_manager = user_manager
        self.host = host
        self.port = port
        self.debounce_seconds = debounce_seconds
        # Map: project_id -> set of connected WebSocket clients
        self.subscribers: Dict[str, Set] = {}
        # Map: project_id -> shared editing session
        self.sessions: Dict[str, EditorSession] = {}
        # Map: project_id -> preview re-render debouncer
        self.debouncers: Dict[str, Debouncer] = {}
        # Map: websocket -> user id
        self.users: Dict[object, str] = {}
        self._server = None
        self._running = False

    def _parse_path(self, path: str):
        """Extract (project_id, user_id) from /ws/<project_id>?user=<user_id>."""
        parts = urlsplit(path)
        segments = parts.path.strip('/').split('/')
        if len(segments) < 2 or segments[0] != 'ws' or not segments[1]:
            return None, None
        user_id = parse_qs(parts.query).get('user', [None])[0]
        return segments[1], user_id

    async def handler(self, websocket):
        """Handle incoming WebSocket connections."""
        path = websocket.request.path
        project_id, user_id = self._parse_path(path)
        if not project_id:
            logger.warning(f"Invalid path: {path}")
            await websocket.close(1008, "Invalid path. Use /ws/<project_id>?user=<user_id>")
            return

        try:
            self.user_manager.require_user(user_id)
            self.project_store.get_for_viewer(project_id, user_id)
        except SiteBuilderError as e:
            logger.warning(f"Rejected preview connection to {project_id}: {e}")
            await websocket.close(1008, str(e))
            return

        await self._subscribe(websocket, project_id, user_id)

        try:
            async for message in websocket:
                await self._handle_message(websocket, project_id, message)
        except websockets.exceptions.ConnectionClosed:
            pass  # Normal disconnect, no logging needed
        except Exception as e:
            logger.error(f"Error handling connection: {e}")
        finally:
            await self._unsubscribe(websocket, project_id)

    def get_session(self, project_id: str) -> EditorSession:
        """Get or create the editing session of a project."""
        if project_id not in self.sessions:
            self.sessions[project_id] = EditorSession(project_id, page_store=self.page_store)
        return self.sessions[project_id]

    def _get_debouncer(self, project_id: str) -> Debouncer:
        """Get or create the preview debouncer of a project."""
        if project_id not in self.debouncers:
            async def render_and_broadcast():
                await self._broadcast_preview(project_id)
            self.debouncers[project_id] = Debouncer(render_and_broadcast, self.debounce_seconds)
        return self.debouncers[project_id]

    async def _subscribe(self, websocket, project_id: str, user_id: str):
        """Subscribe a client to a project's editing session."""
        if project_id not in self.subscribers:
            self.subscribers[project_id] = set()

        self.subscribers[project_id].add(websocket)
        self.users[websocket] = user_id
        logger.debug(f"Client subscribed to {project_id} (total: {len(self.subscribers[project_id])})")

        session = self.get_session(project_id)
        await self._send(websocket, {"type": "state", "state": session.snapshot()})
        if session.console_messages:
            await self._send(websocket, {
                "type": "history",
                "messages": list(session.console_messages)
            })

    async def _unsubscribe(self, websocket, project_id: str):
        """Unsubscribe a client; the session ends with its last client."""
        self.users.pop(websocket, None)
        if project_id in self.subscribers:
            self.subscribers[project_id].discard(websocket)
            if not self.subscribers[project_id]:
                del self.subscribers[project_id]
                self.sessions.pop(project_id, None)
                debouncer = self.debouncers.pop(project_id, None)
                if debouncer:
                    debouncer.cancel()
                logger.info(f"Editing session for {project_id} closed")
            logger.debug(f"Client unsubscribed from {project_id}")

    def _require_edit(self, websocket, project_id: str) -> None:
        """Raise unless the connected user may change the project."""
        user_id = self.users.get(websocket)
        project = self.project_store.get_project(project_id)
        if not can_edit(project, user_id):
            raise NotFoundError(NOT_FOUND_OR_FORBIDDEN)

    async def _handle_message(self, websocket, project_id: str, raw_message: str):
        """Handle incoming message from a client."""
        try:
            message = json.loads(raw_message)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON: {e}")
            return

        msg_type = message.get("type", "unknown")
        session = self.get_session(project_id)
        logger.debug(f"[{project_id}] Received: {msg_type}")

        try:
            if msg_type == "open":
                page = self.page_store.get_page(project_id, message.get("pageId", ""))
                session.open_tab(page)
                await self._broadcast_state(project_id)
                await self._broadcast_preview(project_id)

            elif msg_type == "close":
                session.close_tab(message.get("pageId", ""))
                await self._broadcast_state(project_id)
                await self._broadcast_preview(project_id)

            elif msg_type == "select":
                if message.get("pageId"):
                    session.select_tab(message["pageId"])
                if message.get("file"):
                    session.select_file(message["file"])
                await self._broadcast_state(project_id)
                if message.get("pageId"):
                    await self._broadcast_preview(project_id)

            elif msg_type == "edit":
                self._require_edit(websocket, project_id)
                if session.edit(message.get("content", "")):
                    await self._broadcast_state(project_id, exclude=websocket)
                    self._get_debouncer(project_id).trigger()

            elif msg_type == "save":
                self._require_edit(websocket, project_id)
                page = session.save()
                if page is not None:
                    self.project_store.touch(project_id)
                    await self._broadcast(project_id, {"type": "saved", "pageId": page["id"]})
                    await self._broadcast_state(project_id)

            elif msg_type == "refresh":
                self._get_debouncer(project_id).cancel()
                await self._broadcast_preview(project_id)

            elif msg_type == "console":
                entry = session.record_console(
                    message.get("level", "log"),
                    message.get("message", ""),
                    message.get("timestamp")
                )
                await self._broadcast(project_id, {
                    "type": "console",
                    "level": entry["type"],
                    "message": entry["message"],
                    "timestamp": entry["timestamp"],
                    "hasError": session.has_error
                })

            elif msg_type == "clear_console":
                session.clear_console()
                await self._broadcast_state(project_id)

            elif msg_type == "viewport":
                session.set_viewport(message.get("name", ""))
                await self._broadcast_state(project_id)

            else:
                logger.warning(f"[{project_id}] Unknown message type: {msg_type}")

        except SiteBuilderError as e:
            await self._send(websocket, {"type": "error", "error": str(e), "request": msg_type})
        except Exception as e:
            logger.error(f"Error handling message: {e}")
            await self._send(websocket, {"type": "error", "error": "Internal error", "request": msg_type})

    async def _broadcast_state(self, project_id: str, exclude=None):
        session = self.get_session(project_id)
        await self._broadcast(project_id, {"type": "state", "state": session.snapshot()}, exclude=exclude)

    async def page_changed(self, project_id: str, page: dict):
        """Push a page updated through the REST API into the open session."""
        session = self.sessions.get(project_id)
        if session is None or not session.refresh_tab(page):
            return
        await self._broadcast_state(project_id)
        if session.current_page_id == page["id"]:
            await self._broadcast_preview(project_id)

    async def page_removed(self, project_id: str, page_id: str):
        """Close the tab of a page deleted through the REST API."""
        session = self.sessions.get(project_id)
        if session is None or all(tab["id"] != page_id for tab in session.tabs):
            return
        session.close_tab(page_id)
        await self._broadcast_state(project_id)

    async def _broadcast_preview(self, project_id: str):
        """Render the current page and send the document to every subscriber."""
        session = self.get_session(project_id)
        document = session.render()
        await self._broadcast(project_id, {
            "type": "preview",
            "pageId": session.current_page_id,
            "html": document or "",
            "hasError": session.has_error
        })

    async def _send(self, websocket, message: dict):
        try:
            await websocket.send(json.dumps(message))
        except Exception as e:
            logger.warning(f"Failed to send to client: {e}")

    async def _broadcast(self, project_id: str, message: dict, exclude=None):
        """Broadcast message to all subscribers of a project."""
        dead_connections = set()
        message_json = json.dumps(message)

        # Snapshot: clients may join or leave while a send is pending
        for ws in list(self.subscribers.get(project_id, ())):
            if ws is exclude:
                continue
            try:
                await ws.send(message_json)
            except websockets.exceptions.ConnectionClosed:
                dead_connections.add(ws)
            except Exception as e:
                logger.warning(f"Failed to send to subscriber: {e}")
                dead_connections.add(ws)

        # Clean up dead connections
        for ws in dead_connections:
            self.subscribers.get(project_id, set()).discard(ws)
            self.users.pop(ws, None)

    async def start(self):
        """Start the WebSocket server."""
        self._running = True
        logger.info(f"Starting preview WebSocket server on {self.host}:{self.port}")

        self._server = await websockets.serve(
            self.handler,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10
        )

        logger.info(f"Preview WebSocket server listening on ws://{self.host}:{self.port}/ws/<project_id>")

        # Keep running until stopped
        while self._running:
            await asyncio.sleep(1)

    async def stop(self):
        """Stop the WebSocket server."""
        self._running = False
        for debouncer in self.debouncers.values():
            debouncer.cancel()
        if self._server:
            self._server.close()
            await self._server.wait_closed()
        logger.info("Preview WebSocket server stopped")


# Global server instance
_server_instance: Optional[PreviewWebSocketServer] = None
_server_task: Optional[asyncio.Task] = None


async def start_preview_server(
    project_store,
    page_store,
    user_manager,
    host: str = "0.0.0.0",
    port: int = PREVIEW_WS_PORT
) -> PreviewWebSocketServer:
    """Start the preview WebSocket server in the background."""
    global _server_instance, _server_task

    if _server_instance is None:
        _server_instance = PreviewWebSocketServer(
            project_store, page_store, user_manager, host=host, port=port
        )

    if _server_task is None or _server_task.done():
        _server_task = asyncio.create_task(_server_instance.start())

    return _server_instance


async def stop_preview_server():
    """Stop the preview WebSocket server."""
    global _server_instance, _server_task

    if _server_instance:
        await _server_instance.stop()

    if _server_task:
        _server_task.cancel()
        try:
            await _server_task
        except asyncio.CancelledError:
            pass

    _server_instance = None
    _server_task = None


def get_server() -> Optional[PreviewWebSocketServer]:
    """Get the current server instance."""
    return _server_instance
