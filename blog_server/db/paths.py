"""Where the blog keeps things in the document store.

    posts/<post_id>                          a post
    posts/<post_id>/comments/<comment_id>    its comments
    posts/site-data                          site metadata (never a post)
    posts/site-data/visitors/<ip>            one visitor
    posts/site-data/counters/visitors        global visitor count
"""

from blog_common.errors import NotFoundError
from blog_common.schemas import SITE_DATA_ID

POSTS = "posts"


def _check_id(value: str) -> str:
    if not value or "/" in value:
        raise NotFoundError(f"Invalid id: {value!r}")
    return value


def post_path(post_id: str) -> str:
    return f"{POSTS}/{_check_id(post_id)}"


def comments_path(post_id: str) -> str:
    return f"{post_path(post_id)}/comments"


def comment_path(post_id: str, comment_id: str) -> str:
    return f"{comments_path(post_id)}/{_check_id(comment_id)}"


def site_data_path() -> str:
    return post_path(SITE_DATA_ID)


def visitor_path(ip: str) -> str:
    return f"{site_data_path()}/visitors/{_check_id(ip)}"


def visitor_counter_path() -> str:
    return f"{site_data_path()}/counters/visitors"
