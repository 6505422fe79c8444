"""Page slicing for the post list and the page links shown under it."""

import math
from typing import Optional, Sequence

from blog_common.errors import ValidationError
from blog_common.schemas import SITE_DATA_ID, PageControls, Post, PostPage

MAX_VISIBLE_PAGES = 5


def paginate(posts: Sequence[Post], page: int = 1, per_page: int = 10) -> PostPage:
    """Slice one page out of an already ordered post list.

    The site-data document is dropped before counting. A page past the end
    clamps to the last page, so there is never an empty trailing page while
    posts exist.
    """
    if per_page < 1:
        raise ValidationError("per_page must be at least 1")

    visible = [post for post in posts if post.id != SITE_DATA_ID]
    total_posts = len(visible)
    total_pages = math.ceil(total_posts / per_page)

    page = max(min(page, total_pages), 1)

    start = (page - 1) * per_page
    return PostPage(
        posts=visible[start:start + per_page],
        current_page=page,
        total_pages=total_pages,
        total_posts=total_posts,
        controls=page_controls(page, total_pages)
    )


def page_controls(current_page: int, total_pages: int,
                  max_visible: int = MAX_VISIBLE_PAGES) -> PageControls:
    """Which page links to show.

    At most max_visible numbers, centred on the current page and slid back
    inside 1..total_pages near either end. The first and last pages are added
    when the window misses them, with an ellipsis when there is a gap.
    """
    if total_pages < 1:
        return PageControls(current=current_page)

    start = max(1, current_page - max_visible // 2)
    end = min(total_pages, start + max_visible - 1)
    if end - start + 1 < max_visible:
        start = max(1, end - max_visible + 1)

    first: Optional[int] = 1 if start > 1 else None
    last: Optional[int] = total_pages if end < total_pages else None

    return PageControls(
        current=current_page,
        previous=current_page - 1 if current_page > 1 else None,
        first=first,
        leading_ellipsis=start > 2,
        pages=list(range(start, end + 1)),
        trailing_ellipsis=end < total_pages - 1,
        last=last,
        next=current_page + 1 if current_page < total_pages else None
    )
