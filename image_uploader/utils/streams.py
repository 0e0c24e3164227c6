"""Helpers for duck-typed binary stream handles."""

from typing import Any, Optional


def is_readable(stream: Any) -> bool:
    """Return True if ``stream`` is an open handle that can be read from."""
    if stream is None or not callable(getattr(stream, "read", None)):
        return False
    if getattr(stream, "closed", False):
        return False
    readable = getattr(stream, "readable", None)
    if callable(readable):
        try:
            return bool(readable())
        except ValueError:
            # io raises ValueError for operations on a closed file
            return False
    return True


def response_status(stream: Any) -> Optional[int]:
    """
    Return the HTTP status of a stream that proxies an HTTP response.

    ``http.client.HTTPResponse`` and ``urllib3.HTTPResponse`` expose ``status``;
    other clients use ``status_code``. Plain files return None.
    """
    for attr in ("status", "status_code"):
        value = getattr(stream, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def close_quietly(stream: Any) -> Optional[OSError]:
    """Close ``stream``, returning the OSError raised by close() if any."""
    close = getattr(stream, "close", None)
    if not callable(close):
        return None
    try:
        close()
    except OSError as e:
        return e
    return None
