"""Shared data models for the music blog."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Reserved document id holding site-wide metadata (visitor counters).
SITE_DATA_ID = "site-data"

DEFAULT_AUTHOR = "Anonymous"
AUTHOR_DELETED_MARKER = "[Comment deleted by author]"
ADMIN_DELETED_MARKER = "[Comment deleted by admin]"


class Post(BaseModel):
    """A blog post."""
    id: str
    title: str
    subtitle: str
    content: str
    thumbnail: Optional[str] = None
    pinned: bool = False
    created_at: Optional[datetime] = None
    last_edited: Optional[datetime] = None

    @field_validator("thumbnail")
    @classmethod
    def _empty_thumbnail(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class PostCreate(BaseModel):
    """Request to create a post (admin only)."""
    title: str
    subtitle: str
    content: str
    thumbnail: Optional[str] = None
    pinned: bool = False


class PostUpdate(PostCreate):
    """Request to edit a post. Omitted thumbnail and pinned keep their stored values."""
    pinned: Optional[bool] = None


class Comment(BaseModel):
    """A comment or reply, exactly as stored."""
    id: str
    post_id: str
    author_name: str = DEFAULT_AUTHOR
    author_ip: str
    content: str
    original_content: Optional[str] = None
    parent_id: Optional[str] = None
    ancestors: list[str] = Field(default_factory=list)
    depth: int = 0
    likes: int = 0
    liked_ips: list[str] = Field(default_factory=list)
    deleted_by_author: bool = False
    deleted_by_admin: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_by_author or self.deleted_by_admin

    def to_view(self, viewer_ip: Optional[str] = None) -> "CommentView":
        """Reader-facing copy: IPs stripped, viewer flags filled in."""
        data = self.model_dump(exclude={"author_ip", "liked_ips", "original_content"})
        return CommentView(
            **data,
            is_author=viewer_ip is not None and viewer_ip == self.author_ip,
            has_liked=viewer_ip is not None and viewer_ip in self.liked_ips,
        )


class CommentView(BaseModel):
    """A comment as shown to a reader. Never carries IP addresses."""
    id: str
    post_id: str
    author_name: str
    content: str
    parent_id: Optional[str] = None
    ancestors: list[str] = Field(default_factory=list)
    depth: int = 0
    likes: int = 0
    deleted_by_author: bool = False
    deleted_by_admin: bool = False
    created_at: Optional[datetime] = None
    is_author: bool = False
    has_liked: bool = False


class CommentCreate(BaseModel):
    """Request to create a comment or a reply.

    ancestors and depth are optional; when given they must agree with the
    stored parent.
    """
    author_name: str = DEFAULT_AUTHOR
    content: str
    parent_id: Optional[str] = None
    ancestors: Optional[list[str]] = None
    depth: Optional[int] = None


class CommentCreated(BaseModel):
    id: str


class AdminComment(BaseModel):
    """A comment in the moderation feed, tagged with its post."""
    post_id: str
    post_title: str
    comment: CommentView


class LikeResult(BaseModel):
    """Outcome of a like. already_liked covers both repeat likes and self-likes."""
    liked: bool
    already_liked: bool = False
    is_author: bool = False
    likes: int


class DeleteResult(BaseModel):
    """Outcome of a soft delete."""
    updated: bool
    deleted_by: Literal["author", "admin"]
    already_deleted: bool = False


class CommentThread(BaseModel):
    """A comment, all of its descendants and its ancestor chain."""
    comment: Comment
    replies: list[Comment] = Field(default_factory=list)
    ancestors: list[Comment] = Field(default_factory=list)


class PageControls(BaseModel):
    """Which page links a pager shows around the current page."""
    current: int
    previous: Optional[int] = None
    first: Optional[int] = None
    leading_ellipsis: bool = False
    pages: list[int] = Field(default_factory=list)
    trailing_ellipsis: bool = False
    last: Optional[int] = None
    next: Optional[int] = None


class PostPage(BaseModel):
    """One page of posts."""
    posts: list[Post]
    current_page: int
    total_pages: int
    total_posts: int
    controls: Optional[PageControls] = None


class ThreadNodeView(BaseModel):
    """Serialized node of an assembled comment tree."""
    comment: CommentView
    level: int
    is_new: bool = False
    continue_thread: Optional[str] = None
    children: list["ThreadNodeView"] = Field(default_factory=list)


class ThreadView(BaseModel):
    """A thread response: breadcrumb ancestors plus the assembled tree."""
    ancestors: list[CommentView] = Field(default_factory=list)
    root: ThreadNodeView


class VisitorStats(BaseModel):
    """Site-wide visitor count plus this visitor's own counter."""
    count: int
    first_visit: bool
    visits: int
