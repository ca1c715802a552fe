"""Batch repair of stored chat participant lists.

Walks every room, turns stray bearer credentials back into user ids, falls
back to the legacy buyer/seller fields, and writes the result. Rooms that still
cannot be brought to two valid members are reported, and optionally deleted.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from app.domain.chat.healing import known_names, persist_participants
from app.domain.chat.models import MESSAGES_CHILD, ROOMS_COLLECTION
from app.domain.chat.participants import CredentialVerifier, fold_recovered, normalize_membership, resolve_entries
from app.infra.auth import get_credential_verifier
from app.infra.documents import Document, DocumentStore, get_document_store
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

JOB_NAME = "chat_participant_repair"


async def _repaired_participants(
    doc: Document,
    verifier: CredentialVerifier,
) -> Tuple[List[str], Dict[str, str]]:
    view = normalize_membership(doc.data)
    if view.source == "legacy" or not view.recoverable:
        return view.participants, known_names(doc.data)
    raw = doc.data.get("participants")
    resolved = await resolve_entries(raw, verifier, timeout=settings.credential_decode_timeout_seconds)
    return fold_recovered(raw, resolved), known_names(doc.data, resolved)


async def _delete_room(store: DocumentStore, room_id: str) -> None:
    await store.delete_children(ROOMS_COLLECTION, room_id, MESSAGES_CHILD)
    await store.delete(ROOMS_COLLECTION, room_id)


async def repair_chat_rooms(
    store: DocumentStore,
    verifier: CredentialVerifier,
    *,
    dry_run: bool = False,
    delete_unrecoverable: bool = False,
) -> Dict[str, int]:
    counts: Dict[str, int] = {"scanned": 0, "fixed": 0, "unrecoverable": 0, "deleted": 0, "errors": 0}
    start = time.perf_counter()
    for doc in await store.query(ROOMS_COLLECTION):
        counts["scanned"] += 1
        try:
            participants, names = await _repaired_participants(doc, verifier)
            stored = doc.data.get("participants")
            if len(participants) != 2:
                counts["unrecoverable"] += 1
                logger.warning(
                    "chat_room_unrecoverable",
                    extra={"conversation_id": doc.id, "count": len(participants), "dry_run": dry_run},
                )
                if delete_unrecoverable and not dry_run:
                    await _delete_room(store, doc.id)
                    counts["deleted"] += 1
                continue
            if participants == stored:
                continue
            if dry_run:
                counts["fixed"] += 1
                continue
            repair = await persist_participants(
                store,
                doc.id,
                participants,
                reason="batch",
                names=names,
            )
            counts["fixed" if repair is not None else "errors"] += 1
        except Exception:
            counts["errors"] += 1
            logger.exception("chat_room_repair_error", extra={"conversation_id": doc.id})
    result = "error" if counts["errors"] else "ok"
    obs_metrics.record_job_run(JOB_NAME, result=result, duration_seconds=time.perf_counter() - start)
    logger.info("chat_repair_finished", extra={**counts, "dry_run": dry_run})
    return counts


async def run(
    *,
    dry_run: bool = False,
    delete_unrecoverable: bool = False,
    store: Optional[DocumentStore] = None,
    verifier: Optional[CredentialVerifier] = None,
) -> Dict[str, int]:
    return await repair_chat_rooms(
        store or get_document_store(),
        verifier or get_credential_verifier(),
        dry_run=dry_run,
        delete_unrecoverable=delete_unrecoverable,
    )
