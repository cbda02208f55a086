from __future__ import annotations

from typing import TYPE_CHECKING, final

from loguru import logger

from .validator import (
    can_finish_attach,
    can_finish_merge,
    can_start_attach,
    can_start_merge,
)
from wrangler.errors import (
    Conflict,
    InvalidOrdering,
    NotFound,
    NotRelocatable,
    Unsupported,
    WranglerError,
)
from wrangler.models import RelocationTarget
from wrangler.store import PostUpdate
from wrangler.utils import plural

if TYPE_CHECKING:
    from .collector import PostSetCollector
    from .executor import RelocationExecutor
    from .locks import ThreadLocks
    from wrangler.models import Post
    from wrangler.store import PostStore

VANISHED = "One of the messages was deleted in the meantime."
REORGANIZED = "This thread was reorganized in the meantime; please try again."


@final
class MergeAttachExecutor:
    """
    Attaches and merges by rewriting root and channel references in place. Nothing
    is duplicated, so authorship and timestamps survive untouched.

    Hosts that refuse to re-parent posts raise Unsupported. With a relocation
    executor at hand, the posts are then recreated in the target thread as the bot
    and the originals removed, which is what moving a thread does.
    """

    def __init__(
        self,
        store: PostStore,
        collector: PostSetCollector,
        locks: ThreadLocks,
        *,
        relocation: RelocationExecutor | None = None,
    ) -> None:
        self.store = store
        self.collector = collector
        self.locks = locks
        self.relocation = relocation

    async def _refetch(self, post_id: str) -> Post:
        try:
            return await self.store.get_post(post_id)
        except NotFound as e:
            raise Conflict(VANISHED) from e

    async def _root_of(self, post: Post) -> Post:
        if post.is_root:
            return post
        try:
            return await self.collector.resolve_root(post.root_id)
        except NotFound as e:
            raise Conflict(VANISHED) from e

    async def _relocked_root(self, root_id: str) -> Post:
        # Confirms that the root is still a root now that its lock is held.
        root = await self._refetch(root_id)
        if not root.is_root:
            raise Conflict(REORGANIZED)
        return root

    async def attach(self, staged_post_id: str, target_post_id: str) -> Post:
        """
        Make the staged standalone message a reply in the thread of the target post.
        Can throw NotRelocatable, InvalidOrdering and Conflict.
        """
        target = await self._refetch(target_post_id)
        target_root = await self._root_of(target)

        async with self.locks.hold(staged_post_id, target_root.id):
            target_root = await self._relocked_root(target_root.id)
            staged = await self._refetch(staged_post_id)
            has_replies = staged.is_root and await self.collector.has_replies(staged.id)
            if not can_start_attach(staged, None, has_replies=has_replies):
                if not staged.relocatable:
                    msg = "System messages cannot be attached to a thread."
                    raise NotRelocatable(msg)
                msg = "The staged message is part of a thread now; start over."
                raise Conflict(msg)
            if not can_finish_attach(target, target_root, staged):
                msg = "That message can't be attached to this thread."
                raise InvalidOrdering(msg)

            try:
                attached = await self.store.update_post(
                    staged.id,
                    PostUpdate(
                        root_id=target_root.id, channel_id=target_root.channel_id
                    ),
                )
            except NotFound as e:
                raise Conflict(VANISHED) from e
            except Unsupported:
                if self.relocation is None:
                    raise
                [attached] = await self.relocation.relocate_posts(
                    [staged], RelocationTarget(target_root.channel_id, target_root.id)
                )

        logger.info("attached post {} to thread {}", staged.id, target_root.id)
        return attached

    async def merge(self, staged_root_id: str, target_post_id: str) -> list[Post]:
        """
        Fold the staged thread into the (older) thread of the target post, keeping
        the relative order of its posts. Can throw InvalidOrdering and Conflict.
        """
        target = await self._refetch(target_post_id)
        target_root = await self._root_of(target)

        async with self.locks.hold(staged_root_id, target_root.id):
            target_root = await self._relocked_root(target_root.id)
            staged_root = await self._relocked_root(staged_root_id)
            if not can_start_merge(staged_root, None):
                msg = "System messages cannot be merged."
                raise NotRelocatable(msg)
            if not can_finish_merge(target, target_root, staged_root):
                msg = "Threads can only be merged into an older thread."
                raise InvalidOrdering(msg)

            try:
                posts = await self.collector.collect_thread(
                    staged_root.id, include_system=True
                )
            except NotFound as e:
                raise Conflict(VANISHED) from e
            try:
                merged = await self._reparent(posts, target_root)
            except Unsupported:
                if self.relocation is None:
                    raise
                merged = await self.relocation.relocate_posts(
                    posts, RelocationTarget(target_root.channel_id, target_root.id)
                )

        logger.info(
            "merged thread {} into {} ({})",
            staged_root.id,
            target_root.id,
            plural(len(merged), "post"),
        )
        return merged

    async def _reparent(self, posts: list[Post], target_root: Post) -> list[Post]:
        update = PostUpdate(root_id=target_root.id, channel_id=target_root.channel_id)
        done: list[Post] = []
        merged: list[Post] = []
        for post in posts:
            try:
                merged.append(await self.store.update_post(post.id, update))
            except WranglerError as e:
                if isinstance(e, Unsupported) and not done:
                    # Nothing was changed yet, so the caller may still recreate.
                    logger.info("host refused to re-parent post {}", post.id)
                    raise
                conflict = Conflict(
                    "The thread could not be merged completely, so it was restored; "
                    "please try again."
                )
                logger.error(
                    "re-parenting post {} failed after {}: {}",
                    post.id,
                    plural(len(done), "post"),
                    e,
                )
                await self._rollback(done, conflict)
                raise conflict from e
            done.append(post)
        return merged

    async def _rollback(self, posts: list[Post], conflict: Conflict) -> None:
        for post in reversed(posts):
            try:
                restore = PostUpdate(root_id=post.root_id, channel_id=post.channel_id)
                await self.store.update_post(post.id, restore)
            except WranglerError as e:
                logger.exception(
                    "could not restore post {} after a failed merge", post.id
                )
                conflict.add_note(f"post {post.id} could not be restored: {e}")
