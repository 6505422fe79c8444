"""Tests for command dispatch and the MCP tool surface."""

import json

import httpx
import pytest

from blog_client.api import BlogClient
from blog_client.commands import Command, Controller
from blog_client.navigation import MemoryHistory, Navigator, PostView
from blog_client.server import TOOLS, Session, SnapshotView
from blog_common.errors import ValidationError
from blog_common.schemas import PostCreate

from conftest import ADMIN_TOKEN

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def client(test_client):
    from blog_server.main import app

    async with BlogClient(
        "http://test", admin_token=ADMIN_TOKEN, transport=httpx.ASGITransport(app=app)
    ) as blog:
        yield blog


@pytest.fixture
def view():
    return SnapshotView()


@pytest.fixture
def controller(client, view):
    return Controller(client, Navigator(client, view, MemoryHistory()))


@pytest.fixture
async def post_id(client):
    return await client.create_post(PostCreate(title="Moanin'", subtitle="Blakey", content="Call and response."))


async def test_view_post_and_back(controller, view, post_id):
    result = await controller.dispatch(Command.VIEW_POST, post_id=post_id)

    assert result["changed"] is True
    assert result["comments"] == []
    assert controller.navigator.state == PostView(post_id)
    assert view.screen["post"]["id"] == post_id

    result = await controller.dispatch("back")
    assert result["changed"] is True
    assert view.screen["list"]["current_page"] == 1


async def test_comment_and_reply(controller, post_id):
    comment = await controller.dispatch(Command.COMMENT, post_id=post_id, content="Hard bop")
    reply = await controller.dispatch(
        Command.REPLY, post_id=post_id, parent_id=comment["id"], content="Indeed"
    )

    [root] = reply["comments"]
    assert root.comment.id == comment["id"]
    assert root.children[0].comment.id == reply["id"]
    assert root.children[0].is_new is True


async def test_like_and_delete(controller, post_id):
    comment = await controller.dispatch(Command.COMMENT, post_id=post_id, content="Nice")

    liked = await controller.dispatch(Command.LIKE, post_id=post_id, comment_id=comment["id"])
    assert liked.is_author is True

    deleted = await controller.dispatch(Command.DELETE, post_id=post_id, comment_id=comment["id"])
    assert deleted["result"].updated is True
    assert deleted["comments"][0].comment.deleted_by_admin is True


async def test_continue_thread_keeps_thread_in_focus(controller, client, post_id):
    parent = None
    for i in range(5):
        parent = await client.create_comment(post_id, f"level {i}", parent_id=parent)
    deep = parent

    thread = await controller.dispatch(Command.CONTINUE_THREAD, post_id=post_id, comment_id=deep)
    assert thread.root.comment.id == deep

    reply = await controller.dispatch(Command.REPLY, post_id=post_id, parent_id=deep, content="deeper")
    assert reply["comments"].root.comment.id == deep
    assert reply["comments"].root.children[0].comment.id == reply["id"]


async def test_edit_and_pin(controller, view, post_id):
    await controller.dispatch(Command.VIEW_POST, post_id=post_id)

    post = await controller.dispatch(
        Command.EDIT, post_id=post_id, title="Moanin' (remaster)", subtitle="Blakey", content="New."
    )
    assert post.title == "Moanin' (remaster)"
    assert view.screen["post"]["title"] == "Moanin' (remaster)"

    assert await controller.dispatch(Command.TOGGLE_PIN, post_id=post_id) == {"pinned": True}


async def test_edit_rejects_blank_fields(controller, post_id):
    with pytest.raises(ValidationError):
        await controller.dispatch(Command.EDIT, post_id=post_id, title="", subtitle="s", content="c")


async def test_paginate(controller, view):
    result = await controller.dispatch(Command.PAGINATE, page=4)
    assert result["changed"] is True
    assert view.screen["list"]["current_page"] == 1


async def test_unknown_command(controller):
    with pytest.raises(ValidationError):
        await controller.dispatch("shuffle")


async def test_tools_cover_commands():
    assert {tool.name for tool in TOOLS} == {command.value for command in Command}


async def test_session_reports_screen_and_errors(client, post_id):
    session = Session(client)

    [content] = await session.call("view_post", {"post_id": post_id})
    payload = json.loads(content.text)
    assert payload["screen"]["post"]["id"] == post_id

    [content] = await session.call("view_post", {"post_id": "missing"})
    payload = json.loads(content.text)
    assert payload["errors"] == ["Error loading post: Post not found"]
    assert "list" in payload["screen"]

    [content] = await session.call("comment", {"post_id": post_id, "content": ""})
    assert content.text == "Error: Please enter a comment"


async def test_edit_keeps_pinned_post_pinned(controller, post_id):
    await controller.dispatch(Command.TOGGLE_PIN, post_id=post_id)

    post = await controller.dispatch(
        Command.EDIT, post_id=post_id, title="Moanin'", subtitle="Blakey", content="Edited."
    )

    assert post.pinned is True
