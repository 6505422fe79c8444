"""Post repository: admin-authored posts and their ordering."""

import logging

from blog_common.errors import NotFoundError, ValidationError
from blog_common.schemas import SITE_DATA_ID, Post, PostCreate, PostPage, PostUpdate
from blog_server.db.paths import POSTS, comments_path, post_path
from blog_server.db.store import DESCENDING, Document, DocumentStore, ServerTimestamp
from blog_server.pagination import paginate

logger = logging.getLogger(__name__)


def to_post(doc: Document) -> Post:
    return Post.model_validate(doc.to_dict())


def _validated_fields(data: PostCreate) -> dict:
    title, subtitle, content = data.title.strip(), data.subtitle.strip(), data.content.strip()
    if not (title and subtitle and content):
        raise ValidationError("Please fill out all required fields")
    fields = {"title": title, "subtitle": subtitle, "content": content}
    if data.thumbnail is not None:
        fields["thumbnail"] = data.thumbnail.strip()
    if data.pinned is not None:
        fields["pinned"] = data.pinned
    return fields


class PostRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _path(self, post_id: str) -> str:
        if post_id == SITE_DATA_ID:
            raise NotFoundError("Post not found")
        return post_path(post_id)

    async def create(self, data: PostCreate) -> str:
        fields = _validated_fields(data)
        post_id = self.store.add(POSTS, {
            "thumbnail": "",
            **fields,
            "created_at": ServerTimestamp(),
            "last_edited": None,
        })
        logger.info("Post %s created (pinned=%s)", post_id, fields["pinned"])
        return post_id

    async def get(self, post_id: str) -> Post:
        doc = self.store.get(self._path(post_id))
        if doc is None:
            raise NotFoundError("Post not found")
        return to_post(doc)

    async def update(self, post_id: str, data: PostUpdate) -> Post:
        fields = _validated_fields(data)
        path = self._path(post_id)
        with self.store.transaction() as tx:
            if tx.get(path) is None:
                raise NotFoundError("Post not found")
            tx.update(path, {**fields, "last_edited": ServerTimestamp()})
        logger.info("Post %s updated", post_id)
        return await self.get(post_id)

    async def toggle_pinned(self, post_id: str) -> bool:
        """Flip the pinned flag. Returns the new value."""
        path = self._path(post_id)
        with self.store.transaction() as tx:
            doc = tx.get(path)
            if doc is None:
                raise NotFoundError("Post not found")
            pinned = not doc.data.get("pinned", False)
            tx.update(path, {"pinned": pinned})
        logger.info("Post %s %s", post_id, "pinned" if pinned else "unpinned")
        return pinned

    async def list_all(self) -> list[Post]:
        """Every post, pinned first, then newest first."""
        docs = (
            self.store.query(POSTS)
            .order_by("pinned", DESCENDING)
            .order_by("created_at", DESCENDING)
            .get()
        )
        return [to_post(doc) for doc in docs if doc.id != SITE_DATA_ID]

    async def get_page(self, page: int = 1, per_page: int = 10) -> PostPage:
        return paginate(await self.list_all(), page=page, per_page=per_page)

    async def delete(self, post_id: str) -> int:
        """Delete a post and all of its comments in one batch.

        Returns the number of comments removed. Either everything goes or
        nothing does.
        """
        path = self._path(post_id)
        if self.store.get(path) is None:
            raise NotFoundError("Post not found")

        # Comments are swept at commit time, in the same transaction.
        touched = self.store.batch().delete_collection(comments_path(post_id)).delete(path).commit()
        removed = touched - 1

        logger.info("Post %s deleted with %d comments", post_id, removed)
        return removed
