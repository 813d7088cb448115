"""Turns schedule blocks into a notification log (planning only, nothing is delivered)."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from pytz.tzinfo import BaseTzInfo

from ..core.constants import NOTIFICATION_MAX_BLOCKS, NOTIFICATION_HORIZON_DAYS
from ..core.ids import IdFactory, uuid4_id
from ..db.models import BlockKind, NotificationLogEntry, NotificationStatus
from ..utils.time_utils import format_time, minutes_between
from .schedule_generator import ScheduleBlock

logger = logging.getLogger(__name__)


@dataclass
class NotificationState:
    """Caller-held log of everything planned so far, passed in and returned each time."""
    entries: List[NotificationLogEntry] = field(default_factory=list)


@dataclass
class NotificationPlan:
    state: NotificationState
    scheduled: List[NotificationLogEntry]
    canceled_ids: List[str]


# Used by: _entry_for_block
def notification_title(kind: BlockKind) -> str:
    if kind == BlockKind.WIND_DOWN:
        return "Wind Down Time"
    elif kind == BlockKind.NAP:
        return "Nap Time"
    elif kind == BlockKind.BEDTIME:
        return "Bedtime"
    return "Sleep Schedule"


def notification_body(block: ScheduleBlock, tz: BaseTzInfo) -> str:
    if block.kind == BlockKind.WIND_DOWN:
        return f"Start calming activities before {format_time(block.end, tz)}"
    elif block.kind == BlockKind.NAP:
        return f"Time for a nap. Expected duration: {minutes_between(block.start, block.end)} minutes"
    elif block.kind == BlockKind.BEDTIME:
        return f"Bedtime at {format_time(block.start, tz)}"
    return ""


def _entry_for_block(
    block: ScheduleBlock,
    now: datetime,
    tz: BaseTzInfo,
    new_id: IdFactory,
) -> NotificationLogEntry:
    return NotificationLogEntry(
        id=new_id(),
        scheduled_at=now,
        trigger_at=block.start,
        kind=block.kind,
        status=NotificationStatus.SCHEDULED,
        related_block_id=block.id,
        title=notification_title(block.kind),
        body=notification_body(block, tz),
    )


# Used by: sleep_coordinator.recompute
def plan_block_notifications(
    blocks: Sequence[ScheduleBlock],
    state: Optional[NotificationState],
    now: datetime,
    tz: BaseTzInfo,
    new_id: Optional[IdFactory] = None,
    max_blocks: int = NOTIFICATION_MAX_BLOCKS,
    horizon_days: int = NOTIFICATION_HORIZON_DAYS,
) -> NotificationPlan:
    """
    Plan notifications for the soonest upcoming blocks (at most max_blocks,
    within horizon_days). A pending entry for the same kind at the same instant
    is kept as is; other pending entries are marked triggered when their time
    has passed and canceled otherwise. The input state is not modified.
    """
    new_id = new_id or uuid4_id
    previous = state.entries if state else []

    horizon = now + timedelta(days=horizon_days)
    upcoming = sorted((b for b in blocks if b.start > now), key=lambda b: b.start)
    planned = [b for b in upcoming[:max_blocks] if b.start < horizon]

    reusable: Dict[Tuple[BlockKind, datetime], NotificationLogEntry] = {
        (e.kind, e.trigger_at): e
        for e in previous
        if e.status == NotificationStatus.SCHEDULED and e.trigger_at > now
    }

    kept_ids = set()
    scheduled: List[NotificationLogEntry] = []
    for block in planned:
        match = reusable.pop((block.kind, block.start), None)
        if match is not None:
            entry = match.model_copy(update={
                "related_block_id": block.id,
                "body": notification_body(block, tz),
            })
            kept_ids.add(match.id)
        else:
            entry = _entry_for_block(block, now, tz, new_id)
        scheduled.append(entry)

    entries: List[NotificationLogEntry] = []
    canceled_ids: List[str] = []
    for entry in previous:
        if entry.id in kept_ids:
            continue
        if entry.status != NotificationStatus.SCHEDULED:
            entries.append(entry)
        elif entry.trigger_at <= now:
            entries.append(entry.model_copy(update={"status": NotificationStatus.TRIGGERED}))
        else:
            entries.append(entry.model_copy(update={"status": NotificationStatus.CANCELED}))
            canceled_ids.append(entry.id)

    entries.extend(scheduled)

    logger.info(
        f"Planned {len(scheduled)} notifications ({len(kept_ids)} kept), "
        f"canceled {len(canceled_ids)} pending"
    )
    return NotificationPlan(
        state=NotificationState(entries=entries),
        scheduled=scheduled,
        canceled_ids=canceled_ids,
    )
