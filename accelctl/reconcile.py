"""Processing of work-queue keys through delete or create/update handlers."""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from accelctl.errors import is_no_retry
from accelctl.workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Result:
    """Outcome of one reconciliation; ``requeue_after`` is in seconds."""

    requeue: bool = False
    requeue_after: float = 0.0


class NotFoundError(LookupError):
    """The object for a key no longer exists in the store."""


class ReconcileError(Exception):
    """Syncing a work item failed."""


KeyToObj = Callable[[str], Any]
ProcessDelete = Callable[[str], Result]
ProcessCreateOrUpdate = Callable[[Any], Result]


def process_next_work_item(
    queue: RateLimitingQueue,
    key_to_obj: KeyToObj,
    process_delete: ProcessDelete,
    process_create_or_update: ProcessCreateOrUpdate,
) -> bool:
    """Handle one item from ``queue``; return False once the queue is shut down."""
    item, shutdown = queue.get()
    if shutdown:
        return False
    try:
        _reconcile_handler(item, queue, key_to_obj, process_delete, process_create_or_update)
    except ReconcileError as err:
        logger.error("%s", err)
    finally:
        queue.done(item)
    return True


def _sync(queue: RateLimitingQueue, key: str, action: Callable[[Any], Result], arg: Any) -> Result:
    try:
        return action(arg)
    except Exception as err:
        if is_no_retry(err):
            raise ReconcileError(f"error syncing {key!r}: {err}") from err
        queue.add_rate_limited(key)
        raise ReconcileError(f"error syncing {key!r}, and requeued: {err}") from err


def _reconcile_handler(
    req: Any,
    queue: RateLimitingQueue,
    key_to_obj: KeyToObj,
    process_delete: ProcessDelete,
    process_create_or_update: ProcessCreateOrUpdate,
) -> None:
    if not isinstance(req, str):
        queue.forget(req)
        raise ReconcileError(f"expected string in workqueue but got {req!r}")
    key = req
    started = time.monotonic()
    try:
        try:
            obj = key_to_obj(key)
        except NotFoundError:
            result = _sync(queue, key, process_delete, key)
        except Exception as err:
            raise ReconcileError(f"Unable to retrieve {key!r} from store: {err}") from err
        else:
            result = _sync(queue, key, process_create_or_update, copy.deepcopy(obj))

        if result.requeue_after > 0:
            queue.forget(key)
            queue.add_after(key, result.requeue_after)
            logger.info("Successfully synced %r, but requeued after %ss", key, result.requeue_after)
        elif result.requeue:
            queue.add_rate_limited(key)
            logger.info("Successfully synced %r, but requeued", key)
        else:
            queue.forget(key)
            logger.info("Successfully synced %r", key)
    finally:
        logger.debug("Finished syncing %r (%.3fs)", key, time.monotonic() - started)