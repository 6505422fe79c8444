"""Tests for the HTTP client against the app."""

import httpx
import pytest

from blog_client.api import BlogClient
from blog_common.errors import (
    BlogError, NetworkError, NotFoundError, PermissionDeniedError, ValidationError
)
from blog_common.schemas import PostCreate, PostUpdate

from conftest import ADMIN_TOKEN

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def blog(test_client):
    """Admin client wired to the app through the test client's overrides."""
    from blog_server.main import app

    async with BlogClient(
        "http://test", admin_token=ADMIN_TOKEN, transport=httpx.ASGITransport(app=app)
    ) as client:
        yield client


@pytest.fixture
async def visitor(test_client):
    from blog_server.main import app

    async with BlogClient(
        "http://test", admin_token="", transport=httpx.ASGITransport(app=app)
    ) as client:
        yield client


async def new_post(blog, title="Giant Steps"):
    return await blog.create_post(PostCreate(title=title, subtitle="Notes", content="Fast changes."))


async def test_post_lifecycle(blog):
    post_id = await new_post(blog)

    post = await blog.get_post(post_id)
    assert post.title == "Giant Steps"

    edited = await blog.update_post(post_id, PostUpdate(
        title="Giant Steps (take 2)", subtitle="Notes", content="Slower."
    ))
    assert edited.last_edited is not None

    assert await blog.toggle_pin(post_id) is True

    page = await blog.get_page()
    assert [p.id for p in page.posts] == [post_id]
    assert page.posts[0].pinned is True

    assert await blog.delete_post(post_id) == 0
    with pytest.raises(NotFoundError):
        await blog.get_post(post_id)


async def test_comment_flow(blog):
    post_id = await new_post(blog)

    root = await blog.create_comment(post_id, "Coltrane changes", author_name="Sam")
    reply = await blog.create_comment(post_id, "Agreed", parent_id=root)

    tree = await blog.get_comments(post_id, new_ids=[reply])
    assert tree[0].comment.id == root
    assert tree[0].comment.is_author is True
    assert tree[0].children[0].comment.id == reply
    assert tree[0].children[0].is_new is True

    thread = await blog.get_thread(post_id, reply)
    assert [a.id for a in thread.ancestors] == [root]

    result = await blog.like_comment(post_id, root)
    assert result.is_author is True

    deleted = await blog.delete_comment(post_id, root)
    assert deleted.updated is True
    assert deleted.deleted_by == "admin"


async def test_admin_only_operations_raise_permission(blog, visitor):
    post_id = await new_post(blog)

    with pytest.raises(PermissionDeniedError):
        await visitor.toggle_pin(post_id)


async def test_empty_content_never_sent():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"id": "x"})

    async with BlogClient("http://test", transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ValidationError):
            await client.create_comment("p1", "   ")
        with pytest.raises(ValidationError):
            await client.update_post("p1", PostUpdate(title="", subtitle="s", content="c"))

    assert calls == []


async def test_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with BlogClient("http://test", transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NetworkError):
            await client.get_page()


async def test_status_codes_map_to_errors():
    def handler(request):
        return httpx.Response(418, json={"detail": "teapot"})

    async with BlogClient("http://test", transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(BlogError, match="teapot"):
            await client.get_post("p1")


async def test_visit(blog):
    stats = await blog.record_visit()
    assert stats.first_visit is True
    assert stats.count == 1
