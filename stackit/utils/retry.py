"""Retry decorator for aggregate units of work.

Mutations on a question or answer run as *read – compute – write – commit*
inside one session.  When another request commits first, the commit fails
(``StaleDataError`` from the version counter, ``IntegrityError`` from a
racing insert, or SQLite's ``database is locked``).  The decorated function
is simply executed again from scratch with a fresh session; after
``max_attempts`` the failure surfaces as :class:`stackit.errors.ConflictError`.

Usage
-----

```python
from stackit.utils.retry import retry_on_conflict


@retry_on_conflict()
def _cast_vote_tx(self, answer_id: int, voter_id: int, direction: VoteDirection):
    with db_session(self.session_factory) as db:
        ...
```

Parameters can be tuned per-function:

```python
@retry_on_conflict(max_attempts=5, retriable=lambda exc: isinstance(exc, StaleDataError))
```

The wrapped function runs in a worker thread (``asyncio.to_thread``) so the
back-off uses :func:`time.sleep`.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from typing import Callable
from typing import ParamSpec
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stackit.config import get_settings
from stackit.errors import ConflictError

log = logging.getLogger(__name__)

_T = TypeVar("_T")
_P = ParamSpec("_P")


def is_concurrent_modification(exc: Exception) -> bool:  # noqa: D401 – helper
    """Return *True* if *exc* means another transaction got there first."""

    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        return "locked" in str(exc.orig).lower() or "busy" in str(exc.orig).lower()
    return False


def is_concurrent_modification_or_race(exc: Exception) -> bool:  # noqa: D401 – helper
    """Like :func:`is_concurrent_modification` but also retries racing inserts."""

    return is_concurrent_modification(exc) or isinstance(exc, IntegrityError)


def retry_on_conflict(
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float = 0.5,
    jitter: float = 0.25,
    retriable: Callable[[Exception], bool] | None = None,
) -> Callable[[Callable[_P, _T]], Callable[_P, _T]]:
    """Decorate a unit of work so it is re-run on concurrent modification.

    Parameters
    ----------
    max_attempts:
        Inclusive – the *first* try counts.  Defaults to
        ``settings.max_commit_attempts``.
    base_delay:
        Initial sleep in seconds (doubles on every retry).  Defaults to
        ``settings.retry_base_delay``.
    max_delay:
        Upper bound for back-off sleep.
    jitter:
        0-1.0 – percentage of random noise added/subtracted from delay.
    retriable:
        Callback deciding if *exc* is worth another attempt.  Defaults to
        :func:`is_concurrent_modification`.
    """

    retriable = retriable or is_concurrent_modification

    def decorator(fn: Callable[_P, _T]) -> Callable[_P, _T]:
        @functools.wraps(fn)
        def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _T:
            settings = get_settings()
            attempts_allowed = max_attempts or settings.max_commit_attempts
            delay = settings.retry_base_delay if base_delay is None else base_delay
            attempt = 1

            while True:
                try:
                    return fn(*args, **kwargs)
                except Exception as exc:
                    if not retriable(exc):
                        raise

                    if attempt >= attempts_allowed:
                        log.warning(
                            "Concurrent modification in %s persisted after %d attempts: %s",
                            fn.__name__,
                            attempt,
                            exc,
                        )
                        raise ConflictError(
                            f"{fn.__name__.strip('_')} lost to a concurrent modification "
                            f"{attempt} times; giving up",
                            cause=exc,
                        ) from exc

                    sleep_for = delay * (1 + random.uniform(-jitter, jitter))
                    log.debug(
                        "Retrying %s after concurrent modification (attempt %d/%d, sleep %.3fs)",
                        fn.__name__,
                        attempt,
                        attempts_allowed,
                        sleep_for,
                    )
                    time.sleep(max(sleep_for, 0))

                    attempt += 1
                    delay = min(delay * 2, max_delay)

        return wrapper

    return decorator


__all__ = [
    "is_concurrent_modification",
    "is_concurrent_modification_or_race",
    "retry_on_conflict",
]
