"""
Whether an action may be performed right now. The same predicates decide which
actions the menu offers and whether an executor accepts a request, so the two can
never disagree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from wrangler.models import StageKind

if TYPE_CHECKING:
    from wrangler.models import Post, StagingSlot

__all__ = (
    "Action",
    "ActionContext",
    "can_copy_to_channel",
    "can_finish_attach",
    "can_finish_merge",
    "can_move_thread",
    "can_start_attach",
    "can_start_merge",
    "offered_actions",
)


class Action(Enum):
    MOVE_THREAD = "Move/Copy Thread"
    COPY_TO_CHANNEL = "Copy to Channel"
    START_MERGE = "Merge to Thread"
    FINISH_MERGE = "Merge to this Thread"
    START_ATTACH = "Attach to Thread"
    FINISH_ATTACH = "Attach to this Thread"

    @property
    def label(self) -> str:
        return self.value


def can_move_thread(candidate: Post) -> bool:
    return candidate.relocatable


def can_copy_to_channel(candidate: Post, target_channel_id: str | None) -> bool:
    return (
        candidate.relocatable
        and target_channel_id is not None
        and candidate.channel_id != target_channel_id
    )


def can_start_merge(candidate: Post, staged_root: Post | None) -> bool:
    return candidate.relocatable and staged_root is None


def can_finish_merge(
    candidate: Post, candidate_root: Post, staged_root: Post | None
) -> bool:
    # The older thread survives: the younger one is folded into it.
    return (
        candidate.relocatable
        and staged_root is not None
        and candidate_root.id != staged_root.id
        and candidate_root.created_at < staged_root.created_at
    )


def can_start_attach(
    candidate: Post, staged_post: Post | None, *, has_replies: bool
) -> bool:
    return (
        candidate.relocatable
        and staged_post is None
        and candidate.is_root
        and not has_replies
    )


def can_finish_attach(
    candidate: Post, candidate_root: Post, staged_post: Post | None
) -> bool:
    # A message may only join a thread that already existed when it was posted.
    return (
        candidate.relocatable
        and staged_post is not None
        and candidate.id != staged_post.id
        and candidate.channel_id == staged_post.channel_id
        and candidate_root.created_at <= staged_post.created_at
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class ActionContext:
    candidate: Post
    candidate_root: Post
    has_replies: bool
    slot: StagingSlot | None = None
    copy_target_channel_id: str | None = None

    def staged(self, kind: StageKind) -> Post | None:
        if self.slot is None or self.slot.kind != kind:
            return None
        return self.slot.selection.post


def offered_actions(context: ActionContext, *, merge_enabled: bool) -> list[Action]:
    candidate, root = context.candidate, context.candidate_root
    checks = {
        Action.MOVE_THREAD: can_move_thread(candidate),
        Action.COPY_TO_CHANNEL: can_copy_to_channel(
            candidate, context.copy_target_channel_id
        ),
    }
    # Merging covers everything attaching does, so only one of them is offered.
    if merge_enabled:
        staged_root = context.staged(StageKind.MERGE)
        checks[Action.START_MERGE] = can_start_merge(candidate, staged_root)
        checks[Action.FINISH_MERGE] = can_finish_merge(candidate, root, staged_root)
    else:
        staged_post = context.staged(StageKind.ATTACH)
        checks[Action.START_ATTACH] = can_start_attach(
            candidate, staged_post, has_replies=context.has_replies
        )
        checks[Action.FINISH_ATTACH] = can_finish_attach(candidate, root, staged_post)
    return [action for action, allowed in checks.items() if allowed]
