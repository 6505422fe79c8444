"""Tests for like functionality."""

import pytest

from blog_common.errors import NotFoundError
from blog_server.comments import CommentRepository
from blog_server.ip import StaticIpResolver

pytestmark = pytest.mark.asyncio


async def test_like_comment(test_client, test_post, alice_headers, bob_headers):
    """Test liking a comment."""
    create_response = await test_client.post(
        f"/posts/{test_post}/comments",
        headers=alice_headers,
        json={"content": "A likeable comment."}
    )
    comment_id = create_response.json()["id"]

    like_response = await test_client.post(
        f"/posts/{test_post}/comments/{comment_id}/like",
        headers=bob_headers
    )

    assert like_response.status_code == 200
    assert like_response.json() == {
        "liked": True, "already_liked": False, "is_author": False, "likes": 1
    }


async def test_like_idempotent(test_client, test_post, alice_headers, bob_headers):
    """Test that liking a comment multiple times is idempotent."""
    create_response = await test_client.post(
        f"/posts/{test_post}/comments",
        headers=alice_headers,
        json={"content": "A comment to like many times."}
    )
    comment_id = create_response.json()["id"]

    for _ in range(3):
        like_response = await test_client.post(
            f"/posts/{test_post}/comments/{comment_id}/like",
            headers=bob_headers
        )
        assert like_response.status_code == 200

    # Should still be just 1 like
    assert like_response.json()["likes"] == 1
    assert like_response.json()["already_liked"] is True


async def test_cannot_like_own_comment(alice, comment_factory, test_post):
    comment_id = await comment_factory("Mine")

    result = await alice.like(test_post, comment_id)
    assert result.liked is False
    assert result.already_liked is True
    assert result.is_author is True
    assert result.likes == 0
    assert (await alice.get(test_post, comment_id)).likes == 0


async def test_like_by_multiple_visitors(store, comment_factory, test_post):
    """Test that several visitors can like the same comment."""
    comment_id = await comment_factory("Popular")

    for i in range(1, 5):
        visitor = CommentRepository(store, StaticIpResolver(f"192.0.2.{i}"))
        result = await visitor.like(test_post, comment_id)
        assert result.liked is True
        assert result.likes == i

    comment = await CommentRepository(store, StaticIpResolver("192.0.2.1")).get(test_post, comment_id)
    assert comment.likes == 4
    assert comment.liked_ips == ["192.0.2.1", "192.0.2.2", "192.0.2.3", "192.0.2.4"]


async def test_likes_equal_liked_ips(bob, comment_factory, test_post):
    comment_id = await comment_factory("Check")

    await bob.like(test_post, comment_id)
    await bob.like(test_post, comment_id)

    comment = await bob.get(test_post, comment_id)
    assert comment.likes == len(comment.liked_ips) == 1


async def test_like_missing_comment(bob, test_post):
    with pytest.raises(NotFoundError):
        await bob.like(test_post, "ghost")


async def test_has_liked_flag(test_client, test_post, alice_headers, bob_headers):
    comment_id = (await test_client.post(
        f"/posts/{test_post}/comments", headers=alice_headers, json={"content": "Flag me"}
    )).json()["id"]
    await test_client.post(f"/posts/{test_post}/comments/{comment_id}/like", headers=bob_headers)

    as_bob = (await test_client.get(f"/posts/{test_post}/comments", headers=bob_headers)).json()
    as_alice = (await test_client.get(f"/posts/{test_post}/comments", headers=alice_headers)).json()

    assert as_bob["comments"][0]["comment"]["has_liked"] is True
    assert as_alice["comments"][0]["comment"]["has_liked"] is False
    assert as_alice["comments"][0]["comment"]["likes"] == 1
