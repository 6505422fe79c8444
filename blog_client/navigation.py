"""List/post navigation with a re-entrancy guard.

The navigator is always in one of three states: showing a page of the post
list, showing one post, or transitioning towards one of those. Only one
transition runs at a time. Requests that arrive while a transition is in
flight are dropped, and a safety timer releases the guard if a transition
never finishes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from blog_common.schemas import Post, PostPage

logger = logging.getLogger(__name__)

SAFETY_TIMEOUT = 1.5


@dataclass(frozen=True)
class ListView:
    page: int = 1


@dataclass(frozen=True)
class PostView:
    post_id: str


@dataclass(frozen=True)
class Transitioning:
    target: Union[ListView, PostView]


State = Union[ListView, PostView, Transitioning]


class PostSource(Protocol):
    async def get_post(self, post_id: str) -> Post: ...

    async def get_page(self, page: int = 1) -> PostPage: ...


class View(Protocol):
    def show_post(self, post: Post) -> None: ...

    def show_list(self, page: PostPage) -> None: ...

    def show_error(self, message: str) -> None: ...


class History(Protocol):
    @property
    def fragment(self) -> str: ...

    def push(self, fragment: str) -> None: ...

    def replace(self, fragment: str) -> None: ...


class MemoryHistory:
    """Browser-style history of location fragments, kept in memory."""

    def __init__(self, fragment: str = ""):
        self.entries = [normalize_fragment(fragment)]
        self.index = 0

    @property
    def fragment(self) -> str:
        return self.entries[self.index]

    def push(self, fragment: str):
        del self.entries[self.index + 1:]
        self.entries.append(normalize_fragment(fragment))
        self.index += 1

    def replace(self, fragment: str):
        self.entries[self.index] = normalize_fragment(fragment)

    def back(self) -> Optional[str]:
        """Step back one entry. Returns the new fragment, or None at the start."""
        if self.index == 0:
            return None
        self.index -= 1
        return self.fragment

    def forward(self) -> Optional[str]:
        if self.index + 1 >= len(self.entries):
            return None
        self.index += 1
        return self.fragment


def normalize_fragment(fragment: Optional[str]) -> str:
    return (fragment or "").strip().lstrip("#")


class Navigator:
    def __init__(self, source: PostSource, view: View, history: History,
                 *, safety_timeout: float = SAFETY_TIMEOUT):
        self.source = source
        self.view = view
        self.history = history
        self.safety_timeout = safety_timeout

        self.state: State = ListView(1)
        self.page = 1
        self.busy = False
        self._token = 0
        self._safety: Optional[asyncio.TimerHandle] = None

    @property
    def current_post_id(self) -> Optional[str]:
        if isinstance(self.state, PostView):
            return self.state.post_id
        return None

    def _target(self, fragment: Optional[str]) -> Union[ListView, PostView]:
        post_id = normalize_fragment(fragment)
        if post_id:
            return PostView(post_id)
        return ListView(self.page)

    # Entry points

    async def start(self) -> bool:
        """Render whatever the current fragment points at."""
        return await self._navigate(self._target(self.history.fragment), record=False)

    async def go(self, fragment: str) -> bool:
        """Follow a link: "#<post_id>" opens a post, "" shows the list."""
        return await self._navigate(self._target(fragment), record=True)

    async def back(self) -> bool:
        """Return to the list, dropping the post from the location."""
        return await self._navigate(ListView(self.page), record=True)

    async def on_history_change(self, fragment: str) -> bool:
        """React to a back/forward step. History is left as it is."""
        return await self._navigate(self._target(fragment), record=False)

    async def show_page(self, page: int) -> bool:
        return await self._navigate(ListView(page), record=True)

    async def reload(self) -> bool:
        """Render the current target again, e.g. after an edit."""
        state = self.state
        if isinstance(state, Transitioning):
            return False
        return await self._navigate(state, record=False, force=True)

    # Transitions

    async def _navigate(self, target: Union[ListView, PostView], *,
                        record: bool, force: bool = False) -> bool:
        if self.busy:
            logger.debug("Navigation to %s dropped, transition in progress", target)
            return False
        if not force and isinstance(target, PostView) and self.state == target:
            return False

        token = self._acquire()
        self.state = Transitioning(target)
        try:
            if isinstance(target, PostView):
                await self._enter_post(target, token, record)
            else:
                await self._enter_list(target, token, record)
        finally:
            if token == self._token:
                self._release()
        return True

    async def _enter_post(self, target: PostView, token: int, record: bool):
        try:
            post = await self.source.get_post(target.post_id)
        except Exception as exc:
            if token != self._token:
                return
            logger.warning("Failed to load post %s: %s", target.post_id, exc)
            self.view.show_error(f"Error loading post: {exc}")
            await self._enter_list(ListView(self.page), token, record)
            return

        if token != self._token:
            logger.debug("Discarding stale response for post %s", target.post_id)
            return
        self.view.show_post(post)
        self.state = target
        if record and self.history.fragment != target.post_id:
            self.history.push(target.post_id)

    async def _enter_list(self, target: ListView, token: int, record: bool):
        try:
            page = await self.source.get_page(target.page)
        except Exception as exc:
            if token != self._token:
                return
            logger.warning("Failed to load page %d: %s", target.page, exc)
            self.view.show_error(f"Error loading posts: {exc}")
            self.state = ListView(target.page)
            self._clear_fragment(record)
            return

        if token != self._token:
            logger.debug("Discarding stale response for page %d", target.page)
            return
        self.view.show_list(page)
        self.page = page.current_page
        self.state = ListView(page.current_page)
        self._clear_fragment(record)

    def _clear_fragment(self, record: bool):
        if record and self.history.fragment:
            self.history.replace("")

    # Guard

    def _acquire(self) -> int:
        self.busy = True
        self._token += 1
        self._cancel_safety()
        loop = asyncio.get_running_loop()
        self._safety = loop.call_later(self.safety_timeout, self._force_release, self._token)
        return self._token

    def _release(self):
        self.busy = False
        self._cancel_safety()

    def _force_release(self, token: int):
        self._safety = None
        if self.busy and token == self._token:
            logger.warning("Transition did not finish within %.1fs, releasing guard",
                           self.safety_timeout)
            self.busy = False

    def _cancel_safety(self):
        if self._safety is not None:
            self._safety.cancel()
            self._safety = None
