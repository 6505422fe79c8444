"""Tests for the list/post navigator."""

import asyncio

import pytest

from blog_client.navigation import (
    ListView, MemoryHistory, Navigator, PostView, Transitioning, normalize_fragment
)
from blog_common.errors import NetworkError, NotFoundError
from blog_common.schemas import Post, PostPage

pytestmark = pytest.mark.asyncio


class FakeSource:
    """Serves posts from a dict. Post ids listed in gates wait for their event."""

    def __init__(self, post_ids=("a", "b"), total_pages=3):
        self.posts = {pid: Post(id=pid, title=pid.upper(), subtitle="s", content="c") for pid in post_ids}
        self.total_pages = total_pages
        self.gates: dict[str, asyncio.Event] = {}
        self.fail_pages = False
        self.post_requests = []

    async def get_post(self, post_id):
        self.post_requests.append(post_id)
        if post_id in self.gates:
            await self.gates[post_id].wait()
        if post_id not in self.posts:
            raise NotFoundError("Post not found")
        return self.posts[post_id]

    async def get_page(self, page=1):
        if self.fail_pages:
            raise NetworkError("store offline")
        page = min(max(page, 1), self.total_pages)
        return PostPage(posts=[], current_page=page, total_pages=self.total_pages, total_posts=0)


class RecordingView:
    def __init__(self):
        self.rendered = []
        self.errors = []

    def show_post(self, post):
        self.rendered.append(("post", post.id))

    def show_list(self, page):
        self.rendered.append(("list", page.current_page))

    def show_error(self, message):
        self.errors.append(message)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def history():
    return MemoryHistory()


@pytest.fixture
def navigator(source, view, history):
    return Navigator(source, view, history, safety_timeout=0.05)


async def test_open_post_pushes_fragment(navigator, view, history):
    assert await navigator.go("#a") is True

    assert navigator.state == PostView("a")
    assert view.rendered == [("post", "a")]
    assert history.entries == ["", "a"]
    assert navigator.busy is False


async def test_reopening_current_post_is_noop(navigator, source, history):
    await navigator.go("#a")

    assert await navigator.go("#a") is False
    assert source.post_requests == ["a"]
    assert history.entries == ["", "a"]


async def test_back_replaces_fragment(navigator, view, history):
    await navigator.show_page(2)
    await navigator.go("#a")

    assert await navigator.back() is True
    assert navigator.state == ListView(2)
    assert view.rendered[-1] == ("list", 2)
    assert history.fragment == ""
    assert history.forward() is None


async def test_history_change_does_not_touch_history(navigator, view, history):
    await navigator.go("#a")
    await navigator.go("#b")
    assert history.entries == ["", "a", "b"]

    fragment = history.back()
    assert await navigator.on_history_change(fragment) is True
    assert navigator.state == PostView("a")
    assert history.entries == ["", "a", "b"]
    assert history.index == 1

    fragment = history.back()
    await navigator.on_history_change(fragment)
    assert navigator.state == ListView(1)
    assert view.rendered[-1] == ("list", 1)
    assert history.entries == ["", "a", "b"]


async def test_start_renders_current_fragment(source, view):
    navigator = Navigator(source, view, MemoryHistory("#b"))
    await navigator.start()
    assert navigator.state == PostView("b")


async def test_rapid_requests_yield_one_transition(navigator, source, view, history):
    source.gates["a"] = asyncio.Event()

    first = asyncio.create_task(navigator.go("#a"))
    await asyncio.sleep(0)
    assert navigator.busy is True
    assert navigator.state == Transitioning(PostView("a"))

    assert await navigator.go("#b") is False
    assert await navigator.back() is False

    source.gates["a"].set()
    assert await first is True

    assert view.rendered == [("post", "a")]
    assert navigator.state == PostView("a")
    assert history.entries == ["", "a"]
    assert source.post_requests == ["a"]


async def test_safety_timer_releases_guard(navigator, source, view):
    source.gates["a"] = asyncio.Event()

    stuck = asyncio.create_task(navigator.go("#a"))
    await asyncio.sleep(0.1)
    assert navigator.busy is False

    assert await navigator.go("#b") is True
    assert navigator.state == PostView("b")

    # The abandoned transition finishing late must not redraw the screen.
    source.gates["a"].set()
    await stuck
    assert view.rendered == [("post", "b")]
    assert navigator.state == PostView("b")


async def test_post_error_falls_back_to_list(navigator, view, history):
    await navigator.show_page(3)

    assert await navigator.go("#missing") is True

    assert navigator.state == ListView(3)
    assert view.errors == ["Error loading post: Post not found"]
    assert view.rendered[-1] == ("list", 3)
    assert history.fragment == ""
    assert navigator.busy is False


async def test_list_error_still_ends_in_list(navigator, source, view):
    await navigator.go("#a")
    source.fail_pages = True

    await navigator.back()

    assert navigator.state == ListView(1)
    assert view.errors == ["Error loading posts: store offline"]
    assert navigator.busy is False


async def test_show_page_clamps(navigator):
    await navigator.show_page(9)
    assert navigator.state == ListView(3)
    assert navigator.page == 3


async def test_reload_rerenders_post(navigator, source, view):
    await navigator.go("#a")
    source.posts["a"] = Post(id="a", title="Edited", subtitle="s", content="c")

    assert await navigator.reload() is True
    assert view.rendered == [("post", "a"), ("post", "a")]
    assert source.post_requests == ["a", "a"]


async def test_memory_history():
    history = MemoryHistory()
    history.push("#a")
    history.push("b")
    assert history.back() == "a"
    history.push("c")
    assert history.entries == ["", "a", "c"]
    assert history.forward() is None
    history.replace("")
    assert history.fragment == ""
    assert normalize_fragment(" #x ") == "x"
