from __future__ import annotations

from typing import TYPE_CHECKING, final

from loguru import logger

from .attribution import MOVED_TO_PROP, AttributionHeader, origin_of
from .validator import can_copy_to_channel
from wrangler.errors import (
    InvalidOrdering,
    NotFound,
    PartialFailure,
    StoreError,
    ThreadTooLarge,
    WranglerError,
)
from wrangler.models import Channel, RelocationResult, User
from wrangler.store import PostDraft, PostUpdate
from wrangler.utils import plural

if TYPE_CHECKING:
    from .collector import PostSetCollector
    from .locks import ThreadLocks
    from wrangler.models import Post, RelocationTarget
    from wrangler.store import PostStore


@final
class RelocationExecutor:
    """
    Moves and copies threads by recreating every post in the destination as the bot,
    one at a time and in the original order, so that the store's own timestamps
    reproduce that order.
    """

    def __init__(
        self,
        store: PostStore,
        collector: PostSetCollector,
        locks: ThreadLocks,
        *,
        bot_user_id: str,
        max_thread_size: int = 0,
        move_notice: bool = True,
    ) -> None:
        self.store = store
        self.collector = collector
        self.locks = locks
        self.bot_user_id = bot_user_id
        self.max_thread_size = max_thread_size
        self.move_notice = move_notice

    async def move_thread(
        self,
        seed_post_id: str,
        destination_channel_id: str,
        *,
        executor_id: str | None = None,
    ) -> RelocationResult:
        """
        The originals are only removed once every post exists in the destination.
        Can throw NotFound, NotRelocatable, InvalidOrdering and PartialFailure.
        """
        result = await self._relocate(
            seed_post_id, destination_channel_id, executor_id, remove_originals=True
        )
        logger.info(
            "moved thread {} to {} as {} ({})",
            result.source_root_id,
            result.destination_channel_id,
            result.new_root_id,
            plural(len(result.created), "post"),
        )
        return result

    async def copy_thread(
        self,
        seed_post_id: str,
        destination_channel_id: str,
        *,
        executor_id: str | None = None,
    ) -> RelocationResult:
        result = await self._relocate(
            seed_post_id, destination_channel_id, executor_id, remove_originals=False
        )
        logger.info(
            "copied thread {} to {} as {} ({})",
            result.source_root_id,
            result.destination_channel_id,
            result.new_root_id,
            plural(len(result.created), "post"),
        )
        return result

    async def relocate_posts(
        self,
        posts: list[Post],
        target: RelocationTarget,
        *,
        remove_originals: bool = True,
    ) -> list[Post]:
        """
        Recreate already collected posts at the target, as replies of target.root_id
        when it is set, and return the copies in order. System messages are not
        recreated but are still removed with the rest.

        Takes no locks: the caller must already hold those of every thread involved.
        """
        destination = await self.store.get_channel(target.channel_id)
        result = RelocationResult(
            source_root_id=posts[0].root_id or posts[0].id,
            destination_channel_id=destination.id,
            destination_root_id=target.root_id,
        )
        copies = await self._recreate(
            [post for post in posts if post.relocatable], destination, None, result
        )
        if remove_originals:
            await self._remove_originals(posts, result)
        logger.info(
            "recreated {} from thread {} in {}",
            plural(len(copies), "post"),
            result.source_root_id,
            target.root_id or destination.id,
        )
        return copies

    async def _relocate(
        self,
        seed_post_id: str,
        destination_channel_id: str,
        executor_id: str | None,
        *,
        remove_originals: bool,
    ) -> RelocationResult:
        root = await self.collector.resolve_root(seed_post_id)
        destination = await self.store.get_channel(destination_channel_id)
        executor = await self.store.get_user(executor_id) if executor_id else None

        async with self.locks.hold(root.id):
            # Collect only once the thread is ours, so nothing can change under us.
            posts = await self.collector.collect_thread(seed_post_id)
            root = posts[0]
            if not can_copy_to_channel(root, destination.id):
                msg = f"This thread is already in {destination.mention}."
                raise InvalidOrdering(msg)
            if self.max_thread_size and len(posts) > self.max_thread_size:
                raise ThreadTooLarge(len(posts), self.max_thread_size)

            result = RelocationResult(
                source_root_id=root.id, destination_channel_id=destination.id
            )
            await self._recreate(posts, destination, executor, result)
            if remove_originals:
                await self._remove_originals(posts, result)

        if remove_originals and self.move_notice:
            await self._send_notice(root, destination, result)
        return result

    async def _recreate(
        self,
        posts: list[Post],
        destination: Channel,
        executor: User | None,
        result: RelocationResult,
    ) -> list[Post]:
        users: dict[str, User] = {}
        channels: dict[str, Channel] = {}
        copies: list[Post] = []
        # Equal timestamps would be ordered by the new ids, so the hint must grow.
        hint: int | None = None
        for index, post in enumerate(posts):
            hint = post.created_at if hint is None else max(post.created_at, hint + 1)
            try:
                origin = origin_of(post, self.bot_user_id)
                header = AttributionHeader(
                    origin,
                    await self._get_user(origin.user_id, users),
                    await self._get_channel(origin.channel_id, channels),
                    executor,
                )
                created = await self.store.create_post(
                    PostDraft(
                        channel_id=destination.id,
                        user_id=self.bot_user_id,
                        message=header.apply(post.message),
                        root_id=result.new_root_id or "",
                        props=header.props,
                        create_at=hint,
                    )
                )
            except WranglerError as e:
                result.failed.append(post.id)
                result.pending.extend(p.id for p in posts[index + 1 :])
                logger.error(
                    "recreating post {} of thread {} failed after {}: {}",
                    post.id,
                    result.source_root_id,
                    plural(len(result.created), "post"),
                    e,
                )
                raise PartialFailure(result) from e
            result.created[post.id] = created.id
            copies.append(created)
        return copies

    async def _get_user(self, user_id: str, cache: dict[str, User]) -> User:
        if user_id not in cache:
            try:
                cache[user_id] = await self.store.get_user(user_id)
            except NotFound:
                # Deactivated or removed accounts still deserve some attribution.
                cache[user_id] = User(id=user_id, username=user_id)
        return cache[user_id]

    async def _get_channel(self, channel_id: str, cache: dict[str, Channel]) -> Channel:
        if channel_id not in cache:
            try:
                cache[channel_id] = await self.store.get_channel(channel_id)
            except NotFound:
                cache[channel_id] = Channel(id=channel_id, name=channel_id)
        return cache[channel_id]

    async def _remove_originals(
        self, posts: list[Post], result: RelocationResult
    ) -> None:
        # Replies go first so the root never disappears from under a visible reply.
        for post in reversed(posts):
            try:
                await self.store.delete_post(post.id)
            except NotFound:
                logger.debug("original post {} was already deleted", post.id)
            except StoreError as e:
                logger.warning("could not delete original post {}: {}", post.id, e)
                result.left_in_place.append(post.id)
                await self._flag_original(post, result)

    async def _flag_original(self, post: Post, result: RelocationResult) -> None:
        assert result.new_root_id is not None
        try:
            await self.store.update_post(
                post.id, PostUpdate(props={MOVED_TO_PROP: result.new_root_id})
            )
        except StoreError:
            logger.exception("could not flag original post {} as moved", post.id)

    async def _send_notice(
        self, root: Post, destination: Channel, result: RelocationResult
    ) -> None:
        message = (
            f"A thread with {plural(len(result.created), 'message')} "
            f"was moved to {destination.mention}."
        )
        try:
            await self.store.create_post(
                PostDraft(
                    channel_id=root.channel_id,
                    user_id=self.bot_user_id,
                    message=message,
                    props={MOVED_TO_PROP: result.new_root_id},
                )
            )
        except StoreError as e:
            logger.warning("could not post move notice in {}: {}", root.channel_id, e)
