"""JSON columns and write retries shared by the stores."""
import functools
import logging
from typing import Any

import orjson
from sqlalchemy.exc import OperationalError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

logger = logging.getLogger(__name__)

_MISSING = object()


def to_json(value: Any) -> str:
    return orjson.dumps(value).decode()


def from_json(raw: Any, default: Any = _MISSING) -> Any:
    """Decode a JSON column.

    With a ``default`` the decode is lenient: empty or damaged payloads return
    the default and are logged. Without one, damage raises ``ValueError``.
    """
    if raw is None or (isinstance(raw, str) and raw.strip() in ("", "null", "undefined")):
        if default is _MISSING:
            raise ValueError("empty JSON payload")
        return default
    if not isinstance(raw, (str, bytes)):
        return raw
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        if default is _MISSING:
            raise ValueError(f"unparseable JSON payload: {e}") from e
        logger.warning(f"Ignoring unparseable JSON payload ({e}): {str(raw)[:100]!r}")
        return default


def retry_once(method):
    """Run a store write up to twice when the database reports a transient failure.

    The session is rolled back between attempts; the second failure propagates.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        for attempt in Retrying(stop=stop_after_attempt(2), retry=retry_if_exception_type(OperationalError), reraise=True):
            with attempt:
                try:
                    result = method(self, *args, **kwargs)
                except OperationalError as e:
                    self.db.rollback()
                    logger.warning(f"{method.__qualname__} failed (attempt {attempt.retry_state.attempt_number}): {e}")
                    raise
        return result
    return wrapper
