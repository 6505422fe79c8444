"""Thread assembly: turn a flat list of comments into a nested tree.

Rendering stops at a fixed depth below each root. A comment sitting at that
depth which still has replies gets a "continue thread" marker instead of
children; the reader follows it with a fresh thread request rooted at that
comment.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from blog_common.schemas import Comment, CommentThread, ThreadNodeView

DEFAULT_MAX_DEPTH = 3

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReplyOrder(str, Enum):
    OLDEST_FIRST = "oldest"
    NEWEST_FIRST = "newest"


@dataclass
class ThreadNode:
    """One comment in an assembled tree.

    level is relative to the tree root (0), not the stored comment depth.
    """
    comment: Comment
    level: int
    children: list["ThreadNode"] = field(default_factory=list)
    continue_thread: Optional[str] = None
    is_new: bool = False

    def to_view(self, viewer_ip: Optional[str] = None) -> ThreadNodeView:
        return ThreadNodeView(
            comment=self.comment.to_view(viewer_ip),
            level=self.level,
            is_new=self.is_new,
            continue_thread=self.continue_thread,
            children=[child.to_view(viewer_ip) for child in self.children]
        )


def _created(comment: Comment) -> datetime:
    return comment.created_at or _EPOCH


def _ordered(comments: list[Comment], newest_first: bool, new_ids: frozenset) -> list[Comment]:
    # Two stable sorts: by time, then fresh writes to the front.
    by_time = sorted(comments, key=_created, reverse=newest_first)
    return sorted(by_time, key=lambda c: c.id not in new_ids)


def assemble(comments: Iterable[Comment], *, max_depth: int = DEFAULT_MAX_DEPTH,
             reply_order: ReplyOrder = ReplyOrder.OLDEST_FIRST,
             new_ids: Iterable[str] = ()) -> list[ThreadNode]:
    """Assemble comments into trees, returning the roots newest first.

    A comment is a root when it has no parent or when its parent is not in
    the input (an orphan left by a partial fetch is shown, not dropped).
    """
    arena = {comment.id: comment for comment in comments}
    fresh = frozenset(new_ids)

    roots: list[Comment] = []
    children_of: dict[str, list[Comment]] = {}
    for comment in arena.values():
        if comment.parent_id is None or comment.parent_id not in arena:
            roots.append(comment)
        else:
            children_of.setdefault(comment.parent_id, []).append(comment)

    newest_replies = reply_order == ReplyOrder.NEWEST_FIRST
    for parent_id, siblings in children_of.items():
        children_of[parent_id] = _ordered(siblings, newest_replies, fresh)

    def build(comment: Comment, level: int) -> ThreadNode:
        node = ThreadNode(comment=comment, level=level, is_new=comment.id in fresh)
        replies = children_of.get(comment.id, [])
        if not replies:
            return node
        if level >= max_depth:
            node.continue_thread = comment.id
        else:
            node.children = [build(reply, level + 1) for reply in replies]
        return node

    return [build(root, 0) for root in _ordered(roots, True, fresh)]


def assemble_thread(thread: CommentThread, *, max_depth: int = DEFAULT_MAX_DEPTH,
                    reply_order: ReplyOrder = ReplyOrder.OLDEST_FIRST,
                    new_ids: Iterable[str] = ()) -> ThreadNode:
    """Assemble a fetched thread into one tree rooted at its comment.

    A descendant whose parent is missing from the thread hangs directly off
    the root.
    """
    root_id = thread.comment.id
    known = {root_id, *(reply.id for reply in thread.replies)}
    replies = [
        reply if reply.parent_id in known else reply.model_copy(update={"parent_id": root_id})
        for reply in thread.replies
    ]
    roots = assemble(
        [thread.comment, *replies],
        max_depth=max_depth, reply_order=reply_order, new_ids=new_ids
    )
    return next(node for node in roots if node.comment.id == root_id)


def count_nodes(nodes: Iterable[ThreadNode]) -> int:
    """Number of comments actually rendered in the given trees."""
    return sum(1 + count_nodes(node.children) for node in nodes)
