"""Optimistic mutation protocol.

A :class:`Mutation` captures the pre-image of the ids it touches, applies its
delta synchronously, then awaits the remote call. On success a canonical server
copy replaces the temporary entry; on failure the pre-image is restored and an
error toast is raised. Every store write that talks to the backend goes
through :func:`run_mutation`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from ..core.exceptions import DataAccessError
from ..utils.logger import get_logger
from .collections import EntityCollection
from .toasts import ToastCenter

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class MutationResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[DataAccessError] = None


@dataclass
class Mutation:
    """One optimistic change against one collection."""

    name: str
    collection: EntityCollection
    ids: Sequence[str]
    apply: Callable[[EntityCollection], None]
    commit: Callable[[], Awaitable[Any]]
    failure_message: str
    success_message: Optional[str] = None
    # Temporary id to swap for the canonical object returned by ``commit``
    reconcile_id: Optional[str] = None
    on_rollback: List[Callable[[], None]] = field(default_factory=list)


async def run_mutation(mutation: Mutation, toasts: Optional[ToastCenter] = None, notify: bool = True) -> MutationResult:
    collection = mutation.collection
    pre_image = collection.capture(*mutation.ids)
    mutation.apply(collection)
    try:
        value = await mutation.commit()
    except DataAccessError as e:
        if not collection.restore(pre_image):
            logger.info(f"{mutation.name}: scope changed while in flight, nothing to roll back")
        for callback in mutation.on_rollback:
            callback()
        logger.error(f"{mutation.name} failed, rolled back {pre_image.ids}: {e.message}")
        if notify and toasts is not None:
            toasts.error(mutation.failure_message)
        return MutationResult(ok=False, error=e)

    if mutation.reconcile_id is not None and value is not None and collection.is_current(pre_image):
        collection.reconcile(mutation.reconcile_id, value)
    logger.debug(f"{mutation.name} confirmed for {list(mutation.ids)}")
    if notify and toasts is not None and mutation.success_message:
        toasts.success(mutation.success_message)
    return MutationResult(ok=True, value=value)
