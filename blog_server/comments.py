"""Comment repository: threaded, moderated comments stored under each post."""

import logging
from typing import Optional

from blog_common.errors import (
    NotFoundError, PermissionDeniedError, ValidationError
)
from blog_common.schemas import (
    ADMIN_DELETED_MARKER, AUTHOR_DELETED_MARKER, DEFAULT_AUTHOR, SITE_DATA_ID,
    AdminComment, Comment, CommentCreate, CommentThread, DeleteResult, LikeResult
)
from blog_server.db.paths import POSTS, comment_path, comments_path, post_path
from blog_server.db.store import (
    DESCENDING, ArrayUnion, Document, DocumentStore, FieldPath, Increment,
    ServerTimestamp, Transaction, new_id
)
from blog_server.ip import IpResolver

logger = logging.getLogger(__name__)


def to_comment(doc: Document, post_id: str) -> Comment:
    return Comment.model_validate({**doc.data, "id": doc.id, "post_id": post_id})


class CommentRepository:
    """CRUD and queries over one post's comment collection at a time.

    Every write resolves the caller's IP first; reads never do, so an IP
    lookup outage only blocks commenting, liking and deleting.
    """

    def __init__(self, store: DocumentStore, ip_resolver: IpResolver):
        self.store = store
        self.ip_resolver = ip_resolver

    def _load(self, post_id: str, comment_id: str) -> Comment:
        doc = self.store.get(comment_path(post_id, comment_id))
        if doc is None:
            raise NotFoundError("Comment not found")
        return to_comment(doc, post_id)

    def _lineage(self, tx: Transaction, post_id: str, data: CommentCreate) -> tuple[list[str], int]:
        """Ancestors and depth for a new comment, derived from its parent."""
        if data.parent_id is None:
            if data.ancestors or data.depth:
                raise ValidationError("A top-level comment has no ancestors")
            return [], 0

        doc = tx.get(comment_path(post_id, data.parent_id))
        if doc is None:
            raise NotFoundError("Parent comment not found")
        parent = to_comment(doc, post_id)

        ancestors = parent.ancestors + [parent.id]
        depth = parent.depth + 1
        if data.ancestors is not None and data.ancestors != ancestors:
            raise ValidationError("ancestors do not match the parent comment")
        if data.depth is not None and data.depth != depth:
            raise ValidationError(f"depth must be {depth} for this parent")
        return ancestors, depth

    async def create(self, post_id: str, data: CommentCreate) -> str:
        """Create a comment or reply. Returns the new comment id.

        The post and parent checks run in the same transaction as the write,
        so a post deleted meanwhile never gains a comment.
        """
        content = data.content.strip()
        if not content:
            raise ValidationError("Please enter a comment")
        author_name = (data.author_name or "").strip() or DEFAULT_AUTHOR
        if post_id == SITE_DATA_ID:
            raise NotFoundError("Post not found")

        author_ip = await self.ip_resolver.resolve()

        comment_id = new_id()
        with self.store.transaction() as tx:
            if tx.get(post_path(post_id)) is None:
                raise NotFoundError("Post not found")
            ancestors, depth = self._lineage(tx, post_id, data)
            tx.set(comment_path(post_id, comment_id), {
                "post_id": post_id,
                "author_name": author_name,
                "author_ip": author_ip,
                "content": content,
                "parent_id": data.parent_id,
                "ancestors": ancestors,
                "depth": depth,
                "likes": 0,
                "liked_ips": [],
                "deleted_by_author": False,
                "deleted_by_admin": False,
                "created_at": ServerTimestamp(),
            })
        logger.info("Comment %s created on post %s (depth %d)", comment_id, post_id, depth)
        return comment_id

    async def get(self, post_id: str, comment_id: str) -> Comment:
        return self._load(post_id, comment_id)

    async def get_thread(self, post_id: str, comment_id: str) -> CommentThread:
        """A comment, every descendant and the ancestor chain above it.

        Descendants come back by depth, then oldest first. Ancestors are
        root first; any that no longer exist are skipped.
        """
        comment = self._load(post_id, comment_id)

        replies = (
            self.store.query(comments_path(post_id))
            .where("ancestors", "array_contains", comment_id)
            .order_by("depth")
            .order_by("created_at")
            .get()
        )

        ancestors: list[Comment] = []
        if comment.ancestors:
            docs = (
                self.store.query(comments_path(post_id))
                .where(FieldPath.document_id(), "in", comment.ancestors)
                .get()
            )
            by_id = {doc.id: to_comment(doc, post_id) for doc in docs}
            ancestors = [by_id[a] for a in comment.ancestors if a in by_id]

        return CommentThread(
            comment=comment,
            replies=[to_comment(doc, post_id) for doc in replies],
            ancestors=ancestors
        )

    async def delete(self, post_id: str, comment_id: str, admin: bool = False) -> DeleteResult:
        """Soft delete a comment.

        The author (matched by IP) or an admin may delete. Content is replaced
        by a marker and kept in original_content; replies are untouched. The
        first deletion is final: deleting again changes nothing.
        """
        caller_ip: Optional[str] = None
        if not admin:
            caller_ip = await self.ip_resolver.resolve()

        path = comment_path(post_id, comment_id)
        with self.store.transaction() as tx:
            doc = tx.get(path)
            if doc is None:
                raise NotFoundError("Comment not found")
            comment = to_comment(doc, post_id)

            if admin:
                deleted_by = "admin"
            elif caller_ip == comment.author_ip:
                deleted_by = "author"
            else:
                raise PermissionDeniedError("You can only delete your own comments")

            if comment.is_deleted:
                return DeleteResult(
                    updated=False,
                    deleted_by="admin" if comment.deleted_by_admin else "author",
                    already_deleted=True
                )

            if deleted_by == "admin":
                changes = {"content": ADMIN_DELETED_MARKER, "deleted_by_admin": True}
            else:
                changes = {"content": AUTHOR_DELETED_MARKER, "deleted_by_author": True}
            changes["original_content"] = comment.content
            tx.update(path, changes)

        logger.info("Comment %s on post %s deleted by %s", comment_id, post_id, deleted_by)
        return DeleteResult(updated=True, deleted_by=deleted_by)

    async def like(self, post_id: str, comment_id: str) -> LikeResult:
        """Like a comment once per IP. Authors cannot like their own comments."""
        caller_ip = await self.ip_resolver.resolve()

        path = comment_path(post_id, comment_id)
        with self.store.transaction() as tx:
            doc = tx.get(path)
            if doc is None:
                raise NotFoundError("Comment not found")
            comment = to_comment(doc, post_id)

            is_author = caller_ip == comment.author_ip
            if is_author or caller_ip in comment.liked_ips:
                return LikeResult(
                    liked=False, already_liked=True, is_author=is_author, likes=comment.likes
                )

            tx.update(path, {"likes": Increment(1), "liked_ips": ArrayUnion(caller_ip)})

        return LikeResult(liked=True, likes=comment.likes + 1)

    # Read queries

    def _top_level_query(self, post_id: str):
        return self.store.query(comments_path(post_id)).where("parent_id", "==", None)

    async def top_level(self, post_id: str) -> list[Comment]:
        """Top-level comments, newest first."""
        docs = self._top_level_query(post_id).order_by("created_at", DESCENDING).get()
        return [to_comment(doc, post_id) for doc in docs]

    async def replies(self, post_id: str, parent_id: str) -> list[Comment]:
        """Direct replies to a comment, newest first."""
        docs = (
            self.store.query(comments_path(post_id))
            .where("parent_id", "==", parent_id)
            .order_by("created_at", DESCENDING)
            .get()
        )
        return [to_comment(doc, post_id) for doc in docs]

    async def recent(self, post_id: str, limit: int = 3) -> list[Comment]:
        docs = (
            self._top_level_query(post_id)
            .order_by("created_at", DESCENDING)
            .limit(limit)
            .get()
        )
        return [to_comment(doc, post_id) for doc in docs]

    async def top_liked(self, post_id: str, limit: int = 3) -> list[Comment]:
        """Most liked top-level comments; equal counts go most recent first."""
        docs = (
            self._top_level_query(post_id)
            .order_by("likes", DESCENDING)
            .order_by("created_at", DESCENDING)
            .limit(limit)
            .get()
        )
        return [to_comment(doc, post_id) for doc in docs]

    async def all_for_post(self, post_id: str) -> list[Comment]:
        """Every comment of a post at any depth, newest first."""
        docs = (
            self.store.query(comments_path(post_id))
            .order_by("created_at", DESCENDING)
            .get()
        )
        return [to_comment(doc, post_id) for doc in docs]

    async def recent_across_posts(self, limit_per_post: int = 50) -> list[AdminComment]:
        """Moderation feed: recent comments of every post, newest first."""
        feed: list[AdminComment] = []
        posts = self.store.query(POSTS).where(FieldPath.document_id(), "!=", SITE_DATA_ID).get()
        for post in posts:
            docs = (
                self.store.query(comments_path(post.id))
                .order_by("created_at", DESCENDING)
                .limit(limit_per_post)
                .get()
            )
            for doc in docs:
                feed.append(AdminComment(
                    post_id=post.id,
                    post_title=post.data.get("title", ""),
                    comment=to_comment(doc, post.id).to_view()
                ))

        feed.sort(
            key=lambda item: item.comment.created_at.timestamp() if item.comment.created_at else 0.0,
            reverse=True
        )
        return feed
