"""Async HTTP client for the Music Blog server."""

import logging
import os
from typing import Any, Iterable, Optional

import httpx

from blog_common.errors import NetworkError, ValidationError, error_for_status
from blog_common.schemas import (
    DeleteResult, LikeResult, Post, PostCreate, PostPage, PostUpdate,
    ThreadNodeView, ThreadView, VisitorStats
)

logger = logging.getLogger(__name__)

# Configuration
BLOG_ENDPOINT = os.environ.get("BLOG_ENDPOINT", "http://localhost:8000")
ADMIN_TOKEN = os.environ.get("BLOG_ADMIN_TOKEN")


def _detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, str):
        return detail
    if detail:
        return str(detail)
    return response.text or response.reason_phrase


class BlogClient:
    """Talks to the blog API and raises the shared error types.

    Transport failures become NetworkError and are not retried.
    """

    def __init__(self, endpoint: Optional[str] = None, admin_token: Optional[str] = None,
                 *, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 10.0):
        headers = {"Content-Type": "application/json"}
        token = admin_token if admin_token is not None else ADMIN_TOKEN
        if token:
            headers["X-Blog-Admin"] = token
        self._client = httpx.AsyncClient(
            base_url=endpoint or BLOG_ENDPOINT,
            headers=headers,
            timeout=timeout,
            transport=transport
        )

    async def __aenter__(self) -> "BlogClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Could not reach the blog: {exc}") from exc

        if response.is_error:
            raise error_for_status(response.status_code, _detail(response))
        return response.json()

    # Posts

    async def get_page(self, page: int = 1, per_page: Optional[int] = None) -> PostPage:
        params = {"page": page}
        if per_page:
            params["per_page"] = per_page
        return PostPage.model_validate(await self._request("GET", "/posts", params=params))

    async def get_post(self, post_id: str) -> Post:
        return Post.model_validate(await self._request("GET", f"/posts/{post_id}"))

    async def create_post(self, post: PostCreate) -> str:
        data = await self._request("POST", "/posts", json=post.model_dump())
        return data["id"]

    async def update_post(self, post_id: str, post: PostUpdate) -> Post:
        if not (post.title.strip() and post.subtitle.strip() and post.content.strip()):
            raise ValidationError("Please fill out all required fields")
        data = await self._request("PUT", f"/posts/{post_id}", json=post.model_dump())
        return Post.model_validate(data)

    async def toggle_pin(self, post_id: str) -> bool:
        data = await self._request("POST", f"/posts/{post_id}/pin")
        return data["pinned"]

    async def delete_post(self, post_id: str) -> int:
        data = await self._request("DELETE", f"/posts/{post_id}")
        return data["comments_deleted"]

    # Comments

    async def get_comments(self, post_id: str, new_ids: Iterable[str] = (),
                           order: Optional[str] = None) -> list[ThreadNodeView]:
        params: dict = {"new": list(new_ids)}
        if order:
            params["order"] = order
        data = await self._request("GET", f"/posts/{post_id}/comments", params=params)
        return [ThreadNodeView.model_validate(node) for node in data["comments"]]

    async def get_thread(self, post_id: str, comment_id: str,
                         new_ids: Iterable[str] = ()) -> ThreadView:
        data = await self._request(
            "GET", f"/posts/{post_id}/comments/{comment_id}/thread",
            params={"new": list(new_ids)}
        )
        return ThreadView.model_validate(data)

    async def create_comment(self, post_id: str, content: str,
                             author_name: Optional[str] = None,
                             parent_id: Optional[str] = None) -> str:
        """Post a comment or reply. Empty content never leaves the client."""
        if not content or not content.strip():
            raise ValidationError("Please enter a reply" if parent_id else "Please enter a comment")
        payload = {"content": content.strip(), "parent_id": parent_id}
        if author_name and author_name.strip():
            payload["author_name"] = author_name.strip()
        data = await self._request("POST", f"/posts/{post_id}/comments", json=payload)
        return data["id"]

    async def like_comment(self, post_id: str, comment_id: str) -> LikeResult:
        data = await self._request("POST", f"/posts/{post_id}/comments/{comment_id}/like")
        return LikeResult.model_validate(data)

    async def delete_comment(self, post_id: str, comment_id: str) -> DeleteResult:
        data = await self._request("DELETE", f"/posts/{post_id}/comments/{comment_id}")
        return DeleteResult.model_validate(data)

    # Visitors

    async def record_visit(self) -> VisitorStats:
        return VisitorStats.model_validate(await self._request("POST", "/visits"))
