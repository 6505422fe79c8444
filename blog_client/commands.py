"""User actions, routed to the blog client and the navigator."""

import logging
from enum import Enum
from typing import Any, Optional

from blog_client.api import BlogClient
from blog_client.navigation import Navigator
from blog_common.errors import ValidationError
from blog_common.schemas import PostUpdate

logger = logging.getLogger(__name__)


class Command(str, Enum):
    VIEW_POST = "view_post"
    BACK = "back"
    PAGINATE = "paginate"
    COMMENT = "comment"
    REPLY = "reply"
    DELETE = "delete"
    LIKE = "like"
    CONTINUE_THREAD = "continue_thread"
    EDIT = "edit"
    TOGGLE_PIN = "toggle_pin"


class Controller:
    """Dispatches one command at a time.

    Comment commands answer with the refreshed discussion. While a thread
    opened through CONTINUE_THREAD is on screen, that thread is what gets
    refreshed; otherwise it is the whole comment tree of the post.
    """

    def __init__(self, client: BlogClient, navigator: Navigator):
        self.client = client
        self.navigator = navigator
        self.thread: Optional[tuple[str, str]] = None
        self._handlers = {
            Command.VIEW_POST: self.view_post,
            Command.BACK: self.back,
            Command.PAGINATE: self.paginate,
            Command.COMMENT: self.comment,
            Command.REPLY: self.reply,
            Command.DELETE: self.delete,
            Command.LIKE: self.like,
            Command.CONTINUE_THREAD: self.continue_thread,
            Command.EDIT: self.edit,
            Command.TOGGLE_PIN: self.toggle_pin,
        }

    async def dispatch(self, command: Any, **args) -> Any:
        try:
            handler = self._handlers[Command(command)]
        except ValueError:
            raise ValidationError(f"Unknown command: {command}") from None
        logger.debug("Dispatching %s", command)
        return await handler(**args)

    # Navigation

    async def view_post(self, post_id: str) -> dict:
        self.thread = None
        changed = await self.navigator.go(f"#{post_id}")
        if self.navigator.current_post_id != post_id:
            return {"changed": changed}
        return {"changed": changed, "comments": await self._discussion(post_id)}

    async def back(self) -> dict:
        self.thread = None
        return {"changed": await self.navigator.back()}

    async def paginate(self, page: int) -> dict:
        return {"changed": await self.navigator.show_page(page)}

    # Comments

    async def _discussion(self, post_id: str, new_ids: tuple = ()) -> Any:
        if self.thread and self.thread[0] == post_id:
            return await self.client.get_thread(post_id, self.thread[1], new_ids=new_ids)
        return await self.client.get_comments(post_id, new_ids=new_ids)

    async def comment(self, post_id: str, content: str, author_name: Optional[str] = None) -> dict:
        comment_id = await self.client.create_comment(post_id, content, author_name=author_name)
        self.thread = None
        return {"id": comment_id, "comments": await self._discussion(post_id, (comment_id,))}

    async def reply(self, post_id: str, parent_id: str, content: str,
                    author_name: Optional[str] = None) -> dict:
        comment_id = await self.client.create_comment(
            post_id, content, author_name=author_name, parent_id=parent_id
        )
        return {"id": comment_id, "comments": await self._discussion(post_id, (comment_id,))}

    async def delete(self, post_id: str, comment_id: str) -> dict:
        result = await self.client.delete_comment(post_id, comment_id)
        return {"result": result, "comments": await self._discussion(post_id)}

    async def like(self, post_id: str, comment_id: str) -> Any:
        return await self.client.like_comment(post_id, comment_id)

    async def continue_thread(self, post_id: str, comment_id: str) -> Any:
        thread = await self.client.get_thread(post_id, comment_id)
        self.thread = (post_id, comment_id)
        return thread

    # Admin

    async def edit(self, post_id: str, title: str, subtitle: str, content: str,
                   thumbnail: Optional[str] = None, pinned: Optional[bool] = None) -> Any:
        post = await self.client.update_post(post_id, PostUpdate(
            title=title, subtitle=subtitle, content=content,
            thumbnail=thumbnail, pinned=pinned
        ))
        if self.navigator.current_post_id == post_id:
            await self.navigator.reload()
        return post

    async def toggle_pin(self, post_id: str) -> dict:
        pinned = await self.client.toggle_pin(post_id)
        await self.navigator.reload()
        return {"pinned": pinned}
