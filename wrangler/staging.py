from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, final

from loguru import logger

from wrangler.models import StagingSlot

if TYPE_CHECKING:
    from wrangler.models import RichSelection, StageKind


@final
class StagingStore:
    """
    Holds the first half of each user's two-step attach/merge selection. Every user
    has at most one slot: staging again replaces the previous selection, which is
    also the only way to abandon one.
    """

    def __init__(self, *, expire_after: dt.timedelta | None = None) -> None:
        self.expire_after = expire_after
        self._slots: dict[str, StagingSlot] = {}
        self._copy_targets: dict[str, str] = {}

    @property
    def expiry_threshold(self) -> dt.datetime | None:
        if self.expire_after is None:
            return None
        return dt.datetime.now(tz=dt.UTC) - self.expire_after

    def stage(
        self, user_id: str, selection: RichSelection, kind: StageKind
    ) -> StagingSlot:
        slot = StagingSlot(owner_id=user_id, selection=selection, kind=kind)
        if (previous := self._slots.get(user_id)) is not None:
            logger.info(
                "AlreadyStaged: {} replaced staged {} of post {} with {} of post {}",
                user_id,
                previous.kind,
                previous.selection.post.id,
                kind,
                selection.post.id,
            )
        else:
            logger.info("{} staged post {} for {}", user_id, selection.post.id, kind)
        self._slots[user_id] = slot
        return slot

    def peek(self, user_id: str) -> StagingSlot | None:
        if (slot := self._slots.get(user_id)) is None:
            return None
        if (threshold := self.expiry_threshold) is not None and (
            slot.staged_at < threshold
        ):
            logger.debug("staged {} of {} expired", slot.kind, user_id)
            del self._slots[user_id]
            return None
        return slot

    def clear(self, user_id: str) -> None:
        self._slots.pop(user_id, None)

    def set_copy_target(self, user_id: str, channel_id: str) -> None:
        self._copy_targets[user_id] = channel_id

    def copy_target(self, user_id: str) -> str | None:
        return self._copy_targets.get(user_id)

    def clear_copy_target(self, user_id: str) -> None:
        self._copy_targets.pop(user_id, None)
