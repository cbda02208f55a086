from __future__ import annotations

from typing import TYPE_CHECKING, Self, final

from loguru import logger

from wrangler.errors import (
    Conflict,
    InvalidOrdering,
    NotFound,
    NotRelocatable,
    describe_error,
)
from wrangler.models import RichSelection, StageKind
from wrangler.relocation import (
    ActionContext,
    MergeAttachExecutor,
    PostSetCollector,
    RelocationExecutor,
    ThreadLocks,
    offered_actions,
)
from wrangler.relocation.validator import (
    can_copy_to_channel,
    can_start_attach,
    can_start_merge,
)
from wrangler.staging import StagingStore

if TYPE_CHECKING:
    import datetime as dt

    from wrangler.config import Config
    from wrangler.models import Channel, Post, RelocationResult, StagingSlot
    from wrangler.relocation import Action
    from wrangler.store import PostStore


@final
class Wrangler:
    """
    Entry point for the command and UI layer. Every method takes plain ids and
    either returns a result or raises a wrangler.errors.WranglerError, which
    describe_error() turns into something to show the user.
    """

    describe_error = staticmethod(describe_error)

    def __init__(  # noqa: PLR0913
        self,
        store: PostStore,
        *,
        bot_user_id: str,
        merge_enabled: bool = False,
        max_thread_size: int = 0,
        move_notice: bool = True,
        page_size: int = 200,
        staging_expiry: dt.timedelta | None = None,
    ) -> None:
        self.store = store
        self.merge_enabled = merge_enabled
        self.staging = StagingStore(expire_after=staging_expiry)
        self.locks = ThreadLocks()
        self.collector = PostSetCollector(store, page_size=page_size)
        self.relocation = RelocationExecutor(
            store,
            self.collector,
            self.locks,
            bot_user_id=bot_user_id,
            max_thread_size=max_thread_size,
            move_notice=move_notice,
        )
        self.merging = MergeAttachExecutor(
            store, self.collector, self.locks, relocation=self.relocation
        )

    @classmethod
    def from_config(cls, store: PostStore, config: Config) -> Self:
        return cls(
            store,
            bot_user_id=config.bot_user_id,
            merge_enabled=config.enable_merge_thread,
            max_thread_size=config.move_thread_max_count,
            move_notice=config.move_notice,
            page_size=config.page_size,
            staging_expiry=config.staging_expiry,
        )

    async def collect_thread(self, seed_post_id: str) -> list[Post]:
        return await self.collector.collect_thread(seed_post_id)

    async def select(self, post: Post) -> RichSelection:
        return RichSelection(
            post,
            await self.store.get_user(post.user_id),
            await self.store.get_channel(post.channel_id),
        )

    async def offered_actions(self, user_id: str, post_id: str) -> list[Action]:
        try:
            candidate = await self.store.get_post(post_id)
            root = await self.collector.resolve_root(post_id)
        except (NotFound, Conflict):
            return []
        context = ActionContext(
            candidate=candidate,
            candidate_root=root,
            has_replies=candidate.is_root
            and await self.collector.has_replies(candidate.id),
            slot=self.staging.peek(user_id),
            copy_target_channel_id=self.staging.copy_target(user_id),
        )
        return offered_actions(context, merge_enabled=self.merge_enabled)

    async def move_thread(
        self,
        seed_post_id: str,
        destination_channel_id: str,
        *,
        executor_id: str | None = None,
    ) -> RelocationResult:
        return await self.relocation.move_thread(
            seed_post_id, destination_channel_id, executor_id=executor_id
        )

    async def copy_thread(
        self,
        seed_post_id: str,
        destination_channel_id: str,
        *,
        executor_id: str | None = None,
    ) -> RelocationResult:
        return await self.relocation.copy_thread(
            seed_post_id, destination_channel_id, executor_id=executor_id
        )

    async def attach(self, staged_post_id: str, target_post_id: str) -> Post:
        return await self.merging.attach(staged_post_id, target_post_id)

    async def merge(self, staged_root_id: str, target_post_id: str) -> list[Post]:
        return await self.merging.merge(staged_root_id, target_post_id)

    async def start_copy_to_channel(self, user_id: str, channel_id: str) -> Channel:
        channel = await self.store.get_channel(channel_id)
        self.staging.set_copy_target(user_id, channel.id)
        logger.info("{} will copy messages to {}", user_id, channel.id)
        return channel

    async def copy_to_channel(self, user_id: str, post_id: str) -> RelocationResult:
        target = self.staging.copy_target(user_id)
        candidate = await self.store.get_post(post_id)
        if not candidate.relocatable:
            msg = "System messages cannot be copied."
            raise NotRelocatable(msg)
        if not can_copy_to_channel(candidate, target):
            msg = (
                "Pick a different channel to copy messages to first."
                if target is not None
                else "Pick a channel to copy messages to first."
            )
            raise InvalidOrdering(msg)
        assert target is not None
        return await self.copy_thread(post_id, target, executor_id=user_id)

    async def start_attach(self, user_id: str, post_id: str) -> StagingSlot:
        post = await self.store.get_post(post_id)
        has_replies = post.is_root and await self.collector.has_replies(post.id)
        # Restaging replaces the slot, so an existing one does not count here.
        if not can_start_attach(post, None, has_replies=has_replies):
            if not post.relocatable:
                msg = "System messages cannot be attached to a thread."
                raise NotRelocatable(msg)
            msg = "Only standalone messages can be attached to a thread."
            raise InvalidOrdering(msg)
        return self.staging.stage(user_id, await self.select(post), StageKind.ATTACH)

    async def finish_attach(self, user_id: str, target_post_id: str) -> Post:
        slot = self.staging.peek(user_id)
        if slot is None or slot.kind is not StageKind.ATTACH:
            msg = "There is no message waiting to be attached."
            raise InvalidOrdering(msg)
        # A failure leaves the slot in place so the user can pick another target.
        attached = await self.attach(slot.selection.post.id, target_post_id)
        self.staging.clear(user_id)
        return attached

    async def start_merge(self, user_id: str, post_id: str) -> StagingSlot:
        post = await self.store.get_post(post_id)
        if not can_start_merge(post, None):
            msg = "System messages cannot be merged."
            raise NotRelocatable(msg)
        root = await self.collector.resolve_root(post.id)
        return self.staging.stage(user_id, await self.select(root), StageKind.MERGE)

    async def finish_merge(self, user_id: str, target_post_id: str) -> list[Post]:
        slot = self.staging.peek(user_id)
        if slot is None or slot.kind is not StageKind.MERGE:
            msg = "There is no thread waiting to be merged."
            raise InvalidOrdering(msg)
        merged = await self.merge(slot.selection.post.id, target_post_id)
        self.staging.clear(user_id)
        return merged
