"""MCP Server for the Music Blog - lets AI clients browse and discuss posts."""

import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import BaseModel

from blog_client.api import BlogClient
from blog_client.commands import Command, Controller
from blog_client.navigation import MemoryHistory, Navigator
from blog_common.errors import BlogError
from blog_common.schemas import Post, PostPage

logger = logging.getLogger(__name__)

server = Server("music-blog")


class SnapshotView:
    """Keeps the last rendered screen so tool calls can report it."""

    def __init__(self):
        self.screen: Optional[dict] = None
        self.errors: list[str] = []

    def show_post(self, post: Post):
        self.screen = {"post": post.model_dump(mode="json")}

    def show_list(self, page: PostPage):
        self.screen = {"list": page.model_dump(mode="json")}

    def show_error(self, message: str):
        self.errors.append(message)

    def drain(self) -> dict:
        snapshot: dict = {"screen": self.screen}
        if self.errors:
            snapshot["errors"] = self.errors
            self.errors = []
        return snapshot


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _post_id() -> dict:
    return {"type": "string", "description": "ID of the post"}


def _comment_id(description: str) -> dict:
    return {"type": "string", "description": description}


TOOLS = [
    Tool(
        name=Command.PAGINATE.value,
        description="Show a page of the post list (pinned posts first)",
        inputSchema={
            "type": "object",
            "properties": {
                "page": {"type": "integer", "description": "Page number", "default": 1}
            }
        }
    ),
    Tool(
        name=Command.VIEW_POST.value,
        description="Open a post and read its comments",
        inputSchema={
            "type": "object",
            "properties": {"post_id": _post_id()},
            "required": ["post_id"]
        }
    ),
    Tool(
        name=Command.BACK.value,
        description="Go back from a post to the post list",
        inputSchema={"type": "object", "properties": {}}
    ),
    Tool(
        name=Command.COMMENT.value,
        description="Comment on a post",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "content": {"type": "string", "description": "Comment text"},
                "author_name": {"type": "string", "description": "Display name (optional)"}
            },
            "required": ["post_id", "content"]
        }
    ),
    Tool(
        name=Command.REPLY.value,
        description="Reply to a comment",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "parent_id": _comment_id("ID of the comment to reply to"),
                "content": {"type": "string", "description": "Reply text"},
                "author_name": {"type": "string", "description": "Display name (optional)"}
            },
            "required": ["post_id", "parent_id", "content"]
        }
    ),
    Tool(
        name=Command.LIKE.value,
        description="Like a comment (once per visitor, not your own)",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "comment_id": _comment_id("ID of the comment to like")
            },
            "required": ["post_id", "comment_id"]
        }
    ),
    Tool(
        name=Command.DELETE.value,
        description="Delete one of your comments (admins can delete any)",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "comment_id": _comment_id("ID of the comment to delete")
            },
            "required": ["post_id", "comment_id"]
        }
    ),
    Tool(
        name=Command.CONTINUE_THREAD.value,
        description="Open a deep comment as its own thread",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "comment_id": _comment_id("ID of the comment to continue from")
            },
            "required": ["post_id", "comment_id"]
        }
    ),
    Tool(
        name=Command.EDIT.value,
        description="Edit a post (admin only)",
        inputSchema={
            "type": "object",
            "properties": {
                "post_id": _post_id(),
                "title": {"type": "string"},
                "subtitle": {"type": "string"},
                "content": {"type": "string"},
                "thumbnail": {"type": "string", "description": "Thumbnail URL (optional, unchanged when omitted)"},
                "pinned": {"type": "boolean", "description": "Pinned state (optional, unchanged when omitted)"}
            },
            "required": ["post_id", "title", "subtitle", "content"]
        }
    ),
    Tool(
        name=Command.TOGGLE_PIN.value,
        description="Pin or unpin a post (admin only)",
        inputSchema={
            "type": "object",
            "properties": {"post_id": _post_id()},
            "required": ["post_id"]
        }
    ),
]


class Session:
    """One MCP session: a client, a navigator and the screen it renders."""

    def __init__(self, client: BlogClient):
        self.client = client
        self.view = SnapshotView()
        self.navigator = Navigator(client, self.view, MemoryHistory())
        self.controller = Controller(client, self.navigator)

    async def call(self, name: str, arguments: dict) -> list[TextContent]:
        try:
            result = await self.controller.dispatch(name, **arguments)
        except BlogError as e:
            return [TextContent(type="text", text=f"Error: {e.message}")]
        except TypeError as e:
            return [TextContent(type="text", text=f"Error: bad arguments for {name}: {e}")]

        payload = {"result": _jsonable(result), **self.view.drain()}
        return [TextContent(type="text", text=json.dumps(payload, indent=2))]


_session: Optional[Session] = None


def get_session() -> Session:
    global _session
    if _session is None:
        _session = Session(BlogClient())
    return _session


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available blog tools."""
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    return await get_session().call(name, arguments or {})


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    import asyncio
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
