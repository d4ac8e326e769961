"""Last-write-wins merge of local and remote record sets.

Records are dicts with an ``id`` and an ``updated_at`` timestamp (ISO 8601
string, datetime, or epoch seconds). ``updated_at`` only arbitrates merges;
it says nothing about causal order.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from advisory_engine.core.logging import get_logger

logger = get_logger(__name__)

Record = dict[str, Any]


@dataclass
class MergeResult:
    """Merged records plus the local records that must be uploaded."""

    merged: list[Record] = field(default_factory=list)
    to_upload: list[Record] = field(default_factory=list)


def parse_timestamp(value: Any) -> datetime | None:
    """Normalize an ``updated_at`` value to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable updated_at {value!r}; treating as missing")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_local_newer(local: Record | None, remote: Record | None) -> bool:
    """True when the local record should replace the remote one.

    A record missing remotely is always newer. A local record without a
    usable timestamp never beats an existing remote record.
    """
    if local is None:
        return False
    if remote is None:
        return True
    local_ts = parse_timestamp(local.get("updated_at"))
    remote_ts = parse_timestamp(remote.get("updated_at"))
    if local_ts is None:
        return False
    if remote_ts is None:
        return True
    return local_ts > remote_ts


def merge_records(local: Iterable[Record], remote: Iterable[Record]) -> MergeResult:
    """
    Merge local and remote records by id.

    Remote wins unless the local copy has a strictly later ``updated_at``;
    local-only records are new and always uploaded. Output order is remote
    order followed by local-only records in local order, so merging the
    result against the same remote set again yields the same result.

    Args:
        local: Records from the local cache
        remote: Records from the remote store

    Returns:
        MergeResult with merged records and the local winners to upload
    """
    local_by_id: dict[str, Record] = {}
    for record in local:
        if record.get("id") is not None:
            local_by_id[str(record["id"])] = record

    result = MergeResult()
    seen: set[str] = set()

    for remote_record in remote:
        record_id = remote_record.get("id")
        if record_id is None:
            continue
        key = str(record_id)
        if key in seen:
            continue
        seen.add(key)

        local_record = local_by_id.get(key)
        if local_record is not None and is_local_newer(local_record, remote_record):
            logger.debug(f"Conflict on {key} resolved in favor of local copy")
            result.merged.append(local_record)
            result.to_upload.append(local_record)
        else:
            result.merged.append(remote_record)

    for key, local_record in local_by_id.items():
        if key not in seen:
            result.merged.append(local_record)
            result.to_upload.append(local_record)

    return result


def messages_to_upload(local_messages: Iterable[Record], remote_ids: Iterable[Any]) -> list[Record]:
    """Local messages whose id is absent remotely. Content is never compared."""
    remote = {str(i) for i in remote_ids}
    return [m for m in local_messages if m.get("id") is not None and str(m["id"]) not in remote]


def merge_settings(local: dict[str, Any], remote: dict[str, Any] | None) -> dict[str, Any]:
    """Remote preferences overlaid with local values."""
    return {**(remote or {}), **(local or {})}


def batched(items: list[Any], size: int) -> list[list[Any]]:
    """Split items into consecutive batches of at most ``size``."""
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]
