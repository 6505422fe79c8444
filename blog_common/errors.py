"""Error taxonomy shared by the blog server and its clients."""


class BlogError(Exception):
    """Base class for every error the blog surfaces to callers."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NetworkError(BlogError):
    """Transport failure: store or IP lookup unreachable. Never retried."""
    status_code = 503


class NotFoundError(BlogError):
    """Referenced post or comment does not exist."""
    status_code = 404


class PermissionDeniedError(BlogError):
    """Caller is neither the comment author nor an admin."""
    status_code = 403


class ValidationError(BlogError):
    """A required field is empty or inconsistent. Raised before any I/O."""
    status_code = 400


ERRORS_BY_STATUS = {
    cls.status_code: cls
    for cls in (NetworkError, NotFoundError, PermissionDeniedError, ValidationError)
}


def error_for_status(status_code: int, message: str) -> BlogError:
    """Map an HTTP status back onto the error taxonomy."""
    if status_code == 422:
        return ValidationError(message)
    cls = ERRORS_BY_STATUS.get(status_code, BlogError)
    return cls(message)
