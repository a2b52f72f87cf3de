"""
Scoped collection reads.

The store only filters on one field, so a scope of several programmes becomes
one equality read per programme, issued together and merged by record id.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from fieldops.config import PROGRAMME_FIELD
from fieldops.models import AccessScope, CanonicalRecord, FetchResult
from fieldops.normalizer import entity_for_collection, normalize
from fieldops.store import RemoteStore, children_of

logger = logging.getLogger(__name__)


def newest_first(records: Iterable[CanonicalRecord]) -> List[CanonicalRecord]:
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


async def fetch_scoped_collection(
    store: RemoteStore,
    collection: str,
    scope: AccessScope,
    entity_type: Optional[str] = None,
) -> FetchResult:
    """Read every record of ``collection`` visible to ``scope``.

    Never raises: store failures come back as ``error`` (nothing could be
    read) or ``incomplete`` with ``failed_programmes`` (some reads failed).
    An empty scope returns immediately without touching the store.
    """
    try:
        entity_type = entity_type or entity_for_collection(collection)
    except ValueError as e:
        return FetchResult(error=str(e))

    if scope.is_empty:
        return FetchResult()

    if scope.unrestricted:
        try:
            raw = await store.read(collection)
        except Exception as e:
            logger.warning("Read of %s failed: %s", collection, e)
            return FetchResult(error=str(e))
        records = [normalize(entity_type, doc, rid) for rid, doc in children_of(raw).items()]
        return FetchResult(records=newest_first(records))

    programmes = sorted(scope.programmes)
    outcomes = await asyncio.gather(
        *(store.read_where(collection, PROGRAMME_FIELD, p) for p in programmes),
        return_exceptions=True,
    )

    merged: Dict[str, CanonicalRecord] = {}
    failed: List[str] = []
    errors: List[str] = []
    for programme, outcome in zip(programmes, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning("Read of %s for programme %s failed: %s", collection, programme, outcome)
            failed.append(programme)
            errors.append(f"{programme}: {outcome}")
            continue
        # Later programmes overwrite earlier ones on a shared id.
        for rid, doc in children_of(outcome).items():
            merged[rid] = normalize(entity_type, doc, rid, default_programme=programme)

    if len(failed) == len(programmes):
        return FetchResult(
            incomplete=True,
            error="; ".join(errors),
            failed_programmes=failed,
        )
    return FetchResult(
        records=newest_first(merged.values()),
        incomplete=bool(failed),
        failed_programmes=failed,
    )
