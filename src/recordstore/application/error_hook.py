"""Error transform hook.

Every engine failure surfaced by a database handle passes through the
handle's ``onerror`` hook first. The hook returns None to keep the
original error; any other value replaces it, falsy values included.
Exception replacements are raised as they are; anything else is raised
wrapped in RejectedValue so the caller can still recover the exact value.
"""

from __future__ import annotations

import asyncio
from typing import Any

from recordstore.infrastructure.logging import get_logger
from recordstore.ports.inbound.database import ErrorHook, RejectedValue

logger = get_logger(__name__)


def transform_error(hook: ErrorHook | None, error: BaseException) -> BaseException:
    """Return the exception to raise in place of ``error``."""
    if hook is None:
        return error

    altered = hook(error)
    if altered is None:
        return error

    logger.debug(
        "engine_error_replaced",
        original=repr(error),
        replacement=repr(altered),
    )
    if isinstance(altered, BaseException):
        if altered is not error and altered.__cause__ is None:
            altered.__cause__ = error
        return altered

    replacement = RejectedValue(altered)
    replacement.__cause__ = error
    return replacement


def reject(future: asyncio.Future[Any], hook: ErrorHook | None, error: BaseException) -> None:
    """Fail ``future`` with the transformed error unless it already settled.

    A hook that raises fails the future with its own exception.
    """
    if future.done():
        return
    try:
        replacement = transform_error(hook, error)
    except Exception as e:
        replacement = e
    future.set_exception(replacement)
