"""Clean-up of duplicate entities created by an import."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from envmirror.fingerprint import find_duplicates, fingerprint_of
from envmirror.store import EntityStore, new_id, now_ms

logger = logging.getLogger(__name__)


class DuplicateChoice(str, enum.Enum):
    """What the user wants done when an import overlaps existing entities."""

    OVERWRITE = "overwrite"
    KEEP_BOTH = "keep-both"
    CANCEL = "cancel"


@dataclass
class ImportBatch:
    """The entities created by one import operation."""

    batch_id: str = field(default_factory=new_id)
    entity_ids: set[str] = field(default_factory=set)


@dataclass
class ImportReport:
    batch: ImportBatch
    imported: int = 0
    removed: int = 0
    cancelled: bool = False
    duplicates: dict[str, list] = field(default_factory=dict)


class ImportDeduplicator:
    """Decides which newly imported entities are redundant.

    The oldest entity of each fingerprint group survives. Only entities of
    the current import batch are ever candidates for deletion, so a user's
    prior state is never rewritten, even when it holds duplicates.
    """

    def plan(self, all_entities: Iterable[Any], new_entity_ids: set[str]) -> list:
        to_delete = []
        for fp, group in find_duplicates(all_entities).items():
            ordered = sorted(group, key=lambda e: e.created_at)
            doomed = [e for e in ordered[1:] if e.id in new_entity_ids]
            if doomed:
                logger.debug(
                    "Group %s: keeping %s, deleting %d", fp, ordered[0].id, len(doomed)
                )
            to_delete.extend(doomed)
        return to_delete

    def precheck(self, candidates: list, existing: list) -> dict[str, list]:
        """Duplicate groups that involve at least one candidate."""
        candidate_fps = {fingerprint_of(c) for c in candidates}
        return {
            fp: group
            for fp, group in find_duplicates(list(existing) + list(candidates)).items()
            if fp in candidate_fps
        }


def import_entities(
    candidates: list,
    store: EntityStore,
    kind: str,
    confirm: Callable[[dict[str, list]], DuplicateChoice] | None = None,
    deduplicator: ImportDeduplicator | None = None,
) -> ImportReport:
    """Import ``candidates`` into ``store`` and clean up the duplicates.

    When the import would overlap with existing entities, ``confirm`` is
    asked what to do. Without a ``confirm`` callback duplicates are kept.
    """
    deduplicator = deduplicator or ImportDeduplicator()
    batch = ImportBatch()
    report = ImportReport(batch=batch)

    report.duplicates = deduplicator.precheck(candidates, store.entities(kind))
    choice = DuplicateChoice.KEEP_BOTH
    if report.duplicates and confirm is not None:
        choice = confirm(report.duplicates)
    if choice is DuplicateChoice.CANCEL:
        report.cancelled = True
        return report

    # Later entries in the batch count as younger
    base = now_ms()
    for offset, entity in enumerate(candidates):
        entity.id = entity.id or new_id()
        entity.created_at = base + offset
        store.add(kind, entity)
        batch.entity_ids.add(entity.id)
    report.imported = len(candidates)

    if choice is DuplicateChoice.OVERWRITE:
        doomed = deduplicator.plan(store.entities(kind), batch.entity_ids)
        report.removed = store.delete(kind, {e.id for e in doomed})
        report.imported -= report.removed

    logger.info(
        "Imported %d %s (%d duplicates removed)", report.imported, kind, report.removed
    )
    return report
