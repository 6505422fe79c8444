"""Pytest fixtures for the Music Blog test suite."""

import pytest
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from blog_common.schemas import CommentCreate, PostCreate  # noqa: E402
from blog_server.comments import CommentRepository  # noqa: E402
from blog_server.db.store import DocumentStore  # noqa: E402
from blog_server.ip import StaticIpResolver  # noqa: E402
from blog_server.posts import PostRepository  # noqa: E402
from blog_server.settings import Settings  # noqa: E402

ADMIN_TOKEN = "test-admin-token"
ALICE_IP = "203.0.113.10"
BOB_IP = "198.51.100.20"


@pytest.fixture(scope="function")
def store(tmp_path):
    """Create a fresh document store for each test."""
    return DocumentStore(tmp_path / "test_blog.db")


@pytest.fixture(scope="function")
def settings(tmp_path):
    return Settings(
        database_path=tmp_path / "test_blog.db",
        admin_token=ADMIN_TOKEN,
        posts_per_page=10,
        thread_max_depth=3
    )


@pytest.fixture(scope="function")
async def test_client(store, settings):
    """Create an httpx client bound to the app and the fresh store."""
    from httpx import ASGITransport, AsyncClient
    from blog_server.main import app, get_settings, get_store

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Blog-Admin": ADMIN_TOKEN}


@pytest.fixture
def alice_headers():
    """Requests from the first visitor."""
    return {"X-Forwarded-For": ALICE_IP}


@pytest.fixture
def bob_headers():
    """Requests from a second visitor."""
    return {"X-Forwarded-For": BOB_IP}


@pytest.fixture
def posts(store):
    return PostRepository(store)


@pytest.fixture
def alice(store):
    """Comment repository acting as the first visitor."""
    return CommentRepository(store, StaticIpResolver(ALICE_IP))


@pytest.fixture
def bob(store):
    return CommentRepository(store, StaticIpResolver(BOB_IP))


@pytest.fixture
async def test_post(posts):
    """Create a post and return its id."""
    return await posts.create(PostCreate(
        title="First Light",
        subtitle="Notes on an album",
        content="Side A opens with a long drone."
    ))


@pytest.fixture
def comment_factory(alice, test_post):
    """Factory writing comments as the first visitor on the test post."""
    async def _make(content: str = "Great record", parent_id: str = None,
                    repo: CommentRepository = None) -> str:
        return await (repo or alice).create(
            test_post, CommentCreate(content=content, parent_id=parent_id)
        )
    return _make
