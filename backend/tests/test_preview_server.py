"""Tests for PreviewWebSocketServer - shared editing sessions over WebSocket."""

import asyncio
import json
import pytest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import MemberRole
from preview_server import PreviewWebSocketServer, get_server, start_preview_server, stop_preview_server


class FakeWebSocket:
    """Records sent messages; iterates over queued incoming messages."""

    def __init__(self, path="/ws/unknown", messages=()):
        self.request = SimpleNamespace(path=path)
        self.sent = []
        self.closed = None
        self._messages = list(messages)

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self, code=1000, reason=""):
        self.closed = (code, reason)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message

    def of_type(self, msg_type):
        return [message for message in self.sent if message["type"] == msg_type]


class BrokenWebSocket(FakeWebSocket):
    async def send(self, data):
        raise RuntimeError("connection lost")


class HookedWebSocket(FakeWebSocket):
    """Runs `hook` (a coroutine function) before its next send."""

    hook = None

    async def send(self, data):
        if self.hook:
            hook, self.hook = self.hook, None
            await hook()
        await super().send(data)


@pytest.fixture
def server(projects, pages, users):
    return PreviewWebSocketServer(projects, pages, users, port=0, debounce_seconds=0.01)


@pytest.fixture
def home(pages, project):
    return pages.get_home_page(project["id"])


@pytest.fixture
def viewer(users, projects, project, owner):
    user = users.create_user("viewer@example.com")["user"]
    projects.add_member(project["id"], owner["id"], user["id"], MemberRole.VIEWER)
    return user


def send(server, ws, project_id, **message):
    return server._handle_message(ws, project_id, json.dumps(message))


class TestConnection:

    def test_parse_path(self, server):
        assert server._parse_path("/ws/abc?user=u1") == ("abc", "u1")
        assert server._parse_path("/ws/abc") == ("abc", None)
        assert server._parse_path("/other/abc") == (None, None)
        assert server._parse_path("/ws/") == (None, None)

    def test_invalid_path_closed(self, server):
        ws = FakeWebSocket(path="/nope")

        asyncio.run(server.handler(ws))

        assert ws.closed[0] == 1008
        assert server.subscribers == {}

    def test_unknown_user_rejected(self, server, project):
        ws = FakeWebSocket(path=f"/ws/{project['id']}?user={'f' * 32}")

        asyncio.run(server.handler(ws))

        assert ws.closed == (1008, "Unauthorized")

    def test_stranger_rejected(self, server, project, users):
        stranger = users.create_user("stranger@example.com")["user"]
        ws = FakeWebSocket(path=f"/ws/{project['id']}?user={stranger['id']}")

        asyncio.run(server.handler(ws))

        assert ws.closed == (1008, "Project not found")

    def test_session_lifecycle(self, server, project, owner, home):
        ws = FakeWebSocket(
            path=f"/ws/{project['id']}?user={owner['id']}",
            messages=[json.dumps({"type": "open", "pageId": home["id"]})]
        )

        asyncio.run(server.handler(ws))

        assert ws.closed is None
        assert ws.sent[0]["type"] == "state"
        previews = ws.of_type("preview")
        assert len(previews) == 1
        assert previews[0]["pageId"] == home["id"]
        assert "Welcome to My Site" in previews[0]["html"]
        # The last subscriber left, so the session is gone
        assert project["id"] not in server.sessions
        assert project["id"] not in server.subscribers


class TestMessages:

    def test_open_broadcasts_to_all_subscribers(self, server, project, owner, viewer, home):
        first, second = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            await server._subscribe(first, project["id"], owner["id"])
            await server._subscribe(second, project["id"], viewer["id"])
            await send(server, first, project["id"], type="open", pageId=home["id"])

        asyncio.run(scenario())

        for ws in (first, second):
            assert ws.of_type("state")[-1]["state"]["currentPageId"] == home["id"]
            assert len(ws.of_type("preview")) == 1
        assert server.sessions[project["id"]] is server.get_session(project["id"])

    def test_edit_rerenders_after_debounce(self, server, project, owner, viewer, home):
        editor_ws, watcher_ws = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            await server._subscribe(editor_ws, project["id"], owner["id"])
            await server._subscribe(watcher_ws, project["id"], viewer["id"])
            await send(server, editor_ws, project["id"], type="open", pageId=home["id"])
            for text in ("<h1>A</h1>", "<h1>AB</h1>", "<h1>ABC</h1>"):
                await send(server, editor_ws, project["id"], type="edit", content=text)
            await asyncio.sleep(0.1)

        asyncio.run(scenario())

        previews = watcher_ws.of_type("preview")
        # One preview on open, one after the burst of edits
        assert len(previews) == 2
        assert "<h1>ABC</h1>" in previews[-1]["html"]
        assert watcher_ws.of_type("state")[-1]["state"]["tabs"][0]["dirty"] is True

    def test_viewer_cannot_edit_or_save(self, server, project, viewer, home):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], viewer["id"])
            await send(server, ws, project["id"], type="open", pageId=home["id"])
            await send(server, ws, project["id"], type="edit", content="<p>x</p>")
            await send(server, ws, project["id"], type="save")

        asyncio.run(scenario())

        errors = ws.of_type("error")
        assert [error["request"] for error in errors] == ["edit", "save"]
        assert server.get_session(project["id"]).editor_content() != "<p>x</p>"

    def test_save_persists_and_broadcasts(self, server, project, owner, home, pages):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            await send(server, ws, project["id"], type="open", pageId=home["id"])
            await send(server, ws, project["id"], type="select", file="js")
            await send(server, ws, project["id"], type="edit", content="console.log('saved')")
            await send(server, ws, project["id"], type="save")

        asyncio.run(scenario())

        assert ws.of_type("saved") == [{"type": "saved", "pageId": home["id"]}]
        assert pages.get_page(project["id"], home["id"])["jsContent"] == "console.log('saved')"
        state = ws.of_type("state")[-1]["state"]
        assert state["activeFile"] == "js"
        assert state["tabs"][0]["dirty"] is False

    def test_console_relay(self, server, project, owner, home):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            await send(server, ws, project["id"], type="console", level="error", message="Oops", timestamp=1)

        asyncio.run(scenario())

        assert ws.of_type("console") == [
            {"type": "console", "level": "error", "message": "Oops", "timestamp": 1, "hasError": True}
        ]
        assert server.get_session(project["id"]).has_error is True

    def test_history_sent_to_late_subscriber(self, server, project, owner, viewer):
        first, late = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            await server._subscribe(first, project["id"], owner["id"])
            await send(server, first, project["id"], type="console", level="log", message="hello")
            await server._subscribe(late, project["id"], viewer["id"])

        asyncio.run(scenario())

        history = late.of_type("history")
        assert len(history) == 1
        assert history[0]["messages"][0]["message"] == "hello"

    def test_viewport_and_bad_values(self, server, project, owner):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            await send(server, ws, project["id"], type="viewport", name="tablet")
            await send(server, ws, project["id"], type="viewport", name="fridge")

        asyncio.run(scenario())

        assert ws.of_type("state")[-1]["state"]["viewport"] == "tablet"
        assert ws.of_type("error")[0]["request"] == "viewport"

    def test_invalid_and_unknown_messages_ignored(self, server, project, owner):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            sent_before = len(ws.sent)
            await server._handle_message(ws, project["id"], "{not json")
            await send(server, ws, project["id"], type="dance")
            return sent_before

        sent_before = asyncio.run(scenario())

        assert len(ws.sent) == sent_before

    def test_dead_connections_pruned(self, server, project, owner, viewer):
        alive, dead = FakeWebSocket(), BrokenWebSocket()

        async def scenario():
            await server._subscribe(alive, project["id"], owner["id"])
            await server._subscribe(dead, project["id"], viewer["id"])
            await send(server, alive, project["id"], type="clear_console")

        asyncio.run(scenario())

        assert server.subscribers[project["id"]] == {alive}
        assert dead not in server.users

    def test_rest_update_reaches_open_session(self, server, project, owner, home, pages):
        ws = FakeWebSocket()

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            await send(server, ws, project["id"], type="open", pageId=home["id"])
            stored = pages.update_page(project["id"], home["id"], {"htmlContent": "<h1>From REST</h1>"})
            await server.page_changed(project["id"], stored)
            await send(server, ws, project["id"], type="save")

        asyncio.run(scenario())

        assert "<h1>From REST</h1>" in ws.of_type("preview")[-1]["html"]
        assert pages.get_page(project["id"], home["id"])["htmlContent"] == "<h1>From REST</h1>"

    def test_rest_delete_closes_tab(self, server, project, owner, home, pages):
        ws = FakeWebSocket()
        about = pages.create_page(project["id"], owner["id"], {"title": "About", "slug": "about"})

        async def scenario():
            await server._subscribe(ws, project["id"], owner["id"])
            await send(server, ws, project["id"], type="open", pageId=home["id"])
            await send(server, ws, project["id"], type="open", pageId=about["id"])
            pages.delete_page(project["id"], about["id"])
            await server.page_removed(project["id"], about["id"])
            # No session, nothing to do
            await server.page_removed("0" * 32, about["id"])

        asyncio.run(scenario())

        state = ws.of_type("state")[-1]["state"]
        assert [tab["id"] for tab in state["tabs"]] == [home["id"]]
        assert state["currentPageId"] == home["id"]

    def test_client_joining_during_broadcast(self, server, project, owner, viewer):
        project_id = project["id"]
        joiner, other, newcomer = HookedWebSocket(), FakeWebSocket(), FakeWebSocket()

        async def scenario():
            await server._subscribe(joiner, project_id, owner["id"])
            await server._subscribe(other, project_id, viewer["id"])
            joiner.hook = lambda: server._subscribe(newcomer, project_id, viewer["id"])
            await server._broadcast(project_id, {"type": "saved", "pageId": None})

        asyncio.run(scenario())

        assert len(joiner.of_type("saved")) == 1
        assert len(other.of_type("saved")) == 1
        assert newcomer in server.subscribers[project_id]
        assert newcomer.of_type("state")

    def test_everyone_leaving_during_broadcast(self, server, project, owner, viewer):
        project_id = project["id"]
        leaver, dead = HookedWebSocket(), BrokenWebSocket()

        async def everyone_leaves():
            await server._unsubscribe(leaver, project_id)
            await server._unsubscribe(dead, project_id)

        async def scenario():
            await server._subscribe(leaver, project_id, owner["id"])
            await server._subscribe(dead, project_id, viewer["id"])
            leaver.hook = everyone_leaves
            await server._broadcast(project_id, {"type": "saved", "pageId": None})

        asyncio.run(scenario())

        assert project_id not in server.subscribers
        assert project_id not in server.sessions
        assert server.users == {}


class TestServerLifecycle:

    def test_start_and_stop_global_server(self, projects, pages, users):
        listener = MagicMock()
        listener.wait_closed = AsyncMock()
        serve = AsyncMock(return_value=listener)

        async def scenario():
            with patch("preview_server.websockets.serve", serve):
                server = await start_preview_server(projects, pages, users, port=9999)
                await asyncio.sleep(0)
                running = get_server()
                await stop_preview_server()
                return server, running

        server, running = asyncio.run(scenario())

        assert running is server
        assert get_server() is None
        assert serve.call_args.args[1:] == ("0.0.0.0", 9999)
        listener.close.assert_called_once()
