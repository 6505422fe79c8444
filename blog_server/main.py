"""Music Blog server - FastAPI backend for posts and threaded comments."""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from blog_common.errors import BlogError, NetworkError
from blog_common.schemas import (
    AdminComment, CommentCreate, CommentCreated, CommentView, DeleteResult,
    LikeResult, Post, PostCreate, PostPage, PostUpdate, ThreadNodeView,
    ThreadView, VisitorStats
)
from blog_server.comments import CommentRepository
from blog_server.db.store import DocumentStore
from blog_server.ip import (
    HttpIpResolver, IpResolver, StaticIpResolver, client_ip_from_headers, is_local_address
)
from blog_server.posts import PostRepository
from blog_server.settings import Settings, get_settings
from blog_server.threads import ReplyOrder, assemble, assemble_thread, count_nodes
from blog_server.visitors import VisitorCounter

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100

app = FastAPI(
    title="Music Blog",
    description="Blog posts with threaded, moderated comments",
    version=get_settings().app_version
)


@app.exception_handler(BlogError)
async def blog_error_handler(request: Request, exc: BlogError):
    if isinstance(exc, NetworkError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Dependencies

@lru_cache
def _open_store(path: str) -> DocumentStore:
    return DocumentStore(path)


def get_store(settings: Settings = Depends(get_settings)) -> DocumentStore:
    return _open_store(str(settings.database_path))


def get_caller_ip(request: Request) -> Optional[str]:
    """Caller IP via X-Forwarded-For or the socket peer."""
    peer = request.client.host if request.client else None
    return client_ip_from_headers(request.headers.get("X-Forwarded-For"), peer)


@lru_cache
def _ip_lookup(url: str, timeout: float) -> HttpIpResolver:
    return HttpIpResolver(url=url, timeout=timeout)


def get_ip_lookup(settings: Settings = Depends(get_settings)) -> HttpIpResolver:
    return _ip_lookup(settings.ip_lookup_url, settings.ip_lookup_timeout)


def _is_local(caller_ip: Optional[str], settings: Settings) -> bool:
    return settings.resolve_local_callers and is_local_address(caller_ip)


def get_ip_resolver(
    caller_ip: Optional[str] = Depends(get_caller_ip),
    settings: Settings = Depends(get_settings),
    lookup: HttpIpResolver = Depends(get_ip_lookup)
) -> IpResolver:
    """Identity for writes. Local callers are identified by their public IP."""
    if _is_local(caller_ip, settings):
        return lookup
    return StaticIpResolver(caller_ip)


def get_viewer_ip(
    caller_ip: Optional[str] = Depends(get_caller_ip),
    settings: Settings = Depends(get_settings),
    lookup: HttpIpResolver = Depends(get_ip_lookup)
) -> Optional[str]:
    """IP for the is_author/has_liked flags. Never triggers a lookup."""
    if _is_local(caller_ip, settings):
        return lookup.known_ip
    return caller_ip


def is_admin(request: Request, settings: Settings = Depends(get_settings)) -> bool:
    token = request.headers.get("X-Blog-Admin")
    if not token or not settings.admin_token:
        return False
    return secrets.compare_digest(token, settings.admin_token)


def require_admin(admin: bool = Depends(is_admin)) -> bool:
    """Dependency that requires the admin token."""
    if not admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return True


def get_posts(store: DocumentStore = Depends(get_store)) -> PostRepository:
    return PostRepository(store)


def get_comments(
    store: DocumentStore = Depends(get_store),
    resolver: IpResolver = Depends(get_ip_resolver)
) -> CommentRepository:
    return CommentRepository(store, resolver)


# Post endpoints

class PostCreated(BaseModel):
    id: str


class PinResponse(BaseModel):
    pinned: bool


class PostDeleted(BaseModel):
    success: bool
    comments_deleted: int


@app.get("/posts", response_model=PostPage)
async def list_posts(
    page: int = 1,
    per_page: Optional[int] = None,
    posts: PostRepository = Depends(get_posts),
    settings: Settings = Depends(get_settings)
):
    """List posts, pinned first, one page at a time."""
    per_page = min(per_page or settings.posts_per_page, MAX_PER_PAGE)
    return await posts.get_page(page=page, per_page=per_page)


@app.get("/posts/{post_id}", response_model=Post)
async def get_post(post_id: str, posts: PostRepository = Depends(get_posts)):
    return await posts.get(post_id)


@app.post("/posts", response_model=PostCreated, dependencies=[Depends(require_admin)])
async def create_post(post: PostCreate, posts: PostRepository = Depends(get_posts)):
    """Create a new post."""
    return PostCreated(id=await posts.create(post))


@app.put("/posts/{post_id}", response_model=Post, dependencies=[Depends(require_admin)])
async def update_post(post_id: str, post: PostUpdate, posts: PostRepository = Depends(get_posts)):
    """Edit a post."""
    return await posts.update(post_id, post)


@app.post("/posts/{post_id}/pin", response_model=PinResponse, dependencies=[Depends(require_admin)])
async def toggle_pin(post_id: str, posts: PostRepository = Depends(get_posts)):
    """Pin or unpin a post."""
    return PinResponse(pinned=await posts.toggle_pinned(post_id))


@app.delete("/posts/{post_id}", response_model=PostDeleted, dependencies=[Depends(require_admin)])
async def delete_post(post_id: str, posts: PostRepository = Depends(get_posts)):
    """Delete a post together with all of its comments."""
    removed = await posts.delete(post_id)
    return PostDeleted(success=True, comments_deleted=removed)


# Comment endpoints

class CommentTree(BaseModel):
    comments: list[ThreadNodeView]
    count: int


@app.get("/posts/{post_id}/comments", response_model=CommentTree)
async def get_comment_tree(
    post_id: str,
    order: ReplyOrder = ReplyOrder.NEWEST_FIRST,
    new: list[str] = Query(default=[]),
    posts: PostRepository = Depends(get_posts),
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip),
    settings: Settings = Depends(get_settings)
):
    """All comments of a post, assembled into depth-limited trees."""
    await posts.get(post_id)
    roots = assemble(
        await comments.all_for_post(post_id),
        max_depth=settings.thread_max_depth,
        reply_order=order,
        new_ids=new
    )
    return CommentTree(
        comments=[node.to_view(viewer_ip) for node in roots],
        count=count_nodes(roots)
    )


@app.get("/posts/{post_id}/comments/top-level", response_model=list[CommentView])
async def top_level_comments(
    post_id: str,
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip)
):
    return [c.to_view(viewer_ip) for c in await comments.top_level(post_id)]


@app.get("/posts/{post_id}/comments/recent", response_model=list[CommentView])
async def recent_comments(
    post_id: str,
    limit: int = 3,
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip)
):
    return [c.to_view(viewer_ip) for c in await comments.recent(post_id, min(limit, MAX_PER_PAGE))]


@app.get("/posts/{post_id}/comments/top-liked", response_model=list[CommentView])
async def top_liked_comments(
    post_id: str,
    limit: int = 3,
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip)
):
    return [c.to_view(viewer_ip) for c in await comments.top_liked(post_id, min(limit, MAX_PER_PAGE))]


@app.get("/posts/{post_id}/comments/{comment_id}/replies", response_model=list[CommentView])
async def comment_replies(
    post_id: str,
    comment_id: str,
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip)
):
    return [c.to_view(viewer_ip) for c in await comments.replies(post_id, comment_id)]


@app.get("/posts/{post_id}/comments/{comment_id}/thread", response_model=ThreadView)
async def get_thread(
    post_id: str,
    comment_id: str,
    order: ReplyOrder = ReplyOrder.OLDEST_FIRST,
    new: list[str] = Query(default=[]),
    comments: CommentRepository = Depends(get_comments),
    viewer_ip: Optional[str] = Depends(get_viewer_ip),
    settings: Settings = Depends(get_settings)
):
    """A comment and its replies as a fresh tree, plus its ancestors."""
    thread = await comments.get_thread(post_id, comment_id)
    root = assemble_thread(
        thread,
        max_depth=settings.thread_max_depth,
        reply_order=order,
        new_ids=new
    )
    return ThreadView(
        ancestors=[a.to_view(viewer_ip) for a in thread.ancestors],
        root=root.to_view(viewer_ip)
    )


@app.post("/posts/{post_id}/comments", response_model=CommentCreated)
async def create_comment(
    post_id: str,
    comment: CommentCreate,
    comments: CommentRepository = Depends(get_comments)
):
    """Comment on a post, or reply when parent_id is set."""
    return CommentCreated(id=await comments.create(post_id, comment))


@app.post("/posts/{post_id}/comments/{comment_id}/like", response_model=LikeResult)
async def like_comment(
    post_id: str,
    comment_id: str,
    comments: CommentRepository = Depends(get_comments)
):
    """Like a comment. Liking again is a no-op."""
    return await comments.like(post_id, comment_id)


@app.delete("/posts/{post_id}/comments/{comment_id}", response_model=DeleteResult)
async def delete_comment(
    post_id: str,
    comment_id: str,
    comments: CommentRepository = Depends(get_comments),
    admin: bool = Depends(is_admin)
):
    """Soft delete a comment (its author or the admin)."""
    return await comments.delete(post_id, comment_id, admin=admin)


# Admin endpoints

@app.get("/admin/comments", response_model=list[AdminComment], dependencies=[Depends(require_admin)])
async def moderation_feed(
    limit_per_post: int = 50,
    comments: CommentRepository = Depends(get_comments)
):
    """Recent comments across all posts, newest first."""
    return await comments.recent_across_posts(limit_per_post=min(limit_per_post, MAX_PER_PAGE))


# Visitor endpoints

@app.post("/visits", response_model=VisitorStats)
async def record_visit(
    store: DocumentStore = Depends(get_store),
    resolver: IpResolver = Depends(get_ip_resolver)
):
    """Count this visitor."""
    ip = await resolver.resolve()
    return await VisitorCounter(store).record_visit(ip)


@app.get("/visits/count")
async def visitor_count(store: DocumentStore = Depends(get_store)):
    return {"count": await VisitorCounter(store).count()}


# Health check

@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint."""
    return {"status": "ok", "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
