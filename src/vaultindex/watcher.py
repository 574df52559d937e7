"""Vault event source: turn filesystem changes into synchronizer events.

Requires ``watchfiles`` (optional dependency).
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from vaultindex.sync import EventKind, VaultEvent

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from vaultindex.context import VaultIndex
    from vaultindex.sync import PathState
    from vaultindex.vault import Vault

logger = logging.getLogger(__name__)

# watchfiles.Change values
_ADDED = 1
_MODIFIED = 2
_DELETED = 3


def events_from_changes(
    changes: Iterable[tuple[object, str]],
    vault: Vault,
) -> list[VaultEvent]:
    """Map one debounced batch of raw changes to vault events.

    Hidden, temporary and non-indexable files are dropped.  A batch holding
    exactly one deletion and one addition of the same text document type
    is a rename.
    """
    added: list[str] = []
    modified: list[str] = []
    deleted: list[str] = []
    for change_type, path_str in changes:
        rel = vault.relpath(path_str)
        if rel is None or vault.is_ignored(rel) or not vault.config.is_indexable(rel):
            continue
        kind = int(change_type)  # type: ignore[call-overload]
        if kind == _ADDED:
            added.append(rel)
        elif kind == _MODIFIED:
            modified.append(rel)
        elif kind == _DELETED:
            deleted.append(rel)

    # An editor's save-as-replace shows up as delete + add of the same path.
    for path in set(added) & set(deleted):
        added.remove(path)
        deleted.remove(path)
        modified.append(path)

    # Only text documents are renamed; a moved binary stays delete + create.
    if (
        len(added) == 1
        and len(deleted) == 1
        and PurePosixPath(added[0]).suffix == PurePosixPath(deleted[0]).suffix
        and vault.config.is_text_document(added[0])
    ):
        events = [VaultEvent(EventKind.RENAME, added[0], old_path=deleted[0])]
    else:
        events = [VaultEvent(EventKind.DELETE, p) for p in sorted(set(deleted))]
        events += [VaultEvent(EventKind.CREATE, p) for p in sorted(set(added))]
    events += [
        VaultEvent(EventKind.MODIFY, p) for p in sorted(set(modified) - set(added))
    ]
    return events


async def watch(
    index: VaultIndex,
    *,
    debounce_ms: int | None = None,
    stop_event: asyncio.Event | None = None,
    callback: Callable[[VaultEvent, PathState | None], None] | None = None,
) -> None:
    """Apply vault changes to *index* until *stop_event* is set.

    The snapshot is written every ``snapshot_interval`` seconds while events
    arrive, and once more on exit.
    """
    from watchfiles import awatch

    debounce = debounce_ms if debounce_ms is not None else index.config.debounce_ms
    interval = index.config.snapshot_interval
    last_save = time.monotonic()
    dirty = False

    logger.info("Watching %s (debounce %dms)", index.vault.root, debounce)
    try:
        async for batch in awatch(index.vault.root, debounce=debounce, stop_event=stop_event):
            events = events_from_changes(batch, index.vault)
            if not events:
                continue
            logger.info("Applying %d change(s)", len(events))
            states = await asyncio.gather(*(index.handle(e) for e in events))
            dirty = True
            if callback is not None:
                for event, state in zip(events, states):
                    callback(event, state)
            if time.monotonic() - last_save >= interval:
                await index.save()
                last_save = time.monotonic()
                dirty = False
    finally:
        if dirty:
            await index.save()
