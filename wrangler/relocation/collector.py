from __future__ import annotations

from typing import TYPE_CHECKING, final

from loguru import logger

from wrangler.errors import Conflict, NotRelocatable
from wrangler.utils import aenumerate

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from wrangler.models import Post
    from wrangler.store import PostStore


@final
class PostSetCollector:
    def __init__(self, store: PostStore, *, page_size: int = 200) -> None:
        self.store = store
        self.page_size = page_size

    async def resolve_root(self, post_id: str) -> Post:
        """Can throw NotFound if the post or its root does not exist."""
        post = await self.store.get_post(post_id)
        if post.is_root:
            return post
        root = await self.store.get_post(post.root_id)
        if not root.is_root:
            msg = "This thread was reorganized in the meantime; please try again."
            raise Conflict(msg)
        return root

    async def has_replies(self, root_id: str) -> bool:
        page = await self.store.get_replies(root_id, per_page=1)
        return bool(page.posts)

    async def _iter_pages(self, root_id: str) -> AsyncGenerator[list[Post]]:
        after: Post | None = None
        while True:
            page = await self.store.get_replies(
                root_id, after=after, per_page=self.page_size
            )
            if page.posts:
                yield page.posts
            if not page.has_next:
                return
            if not page.posts:
                # Nothing to continue from; asking again would return the same page.
                logger.warning(
                    "store claimed more replies to {} but returned an empty page",
                    root_id,
                )
                return
            after = max(page.posts, key=lambda p: p.sort_key)

    async def collect_thread(
        self, seed_post_id: str, *, include_system: bool = False
    ) -> list[Post]:
        """
        Return the root and every reply of the thread containing `seed_post_id`,
        oldest first. System and combined-activity replies are left out unless
        `include_system` is set; they never interrupt the page walk.

        Can throw NotFound, NotRelocatable and Conflict.
        """
        seed = await self.store.get_post(seed_post_id)
        if not seed.relocatable:
            msg = "System messages cannot be moved."
            raise NotRelocatable(msg)
        root = seed if seed.is_root else await self.resolve_root(seed.root_id)
        if not root.relocatable:
            msg = "This thread starts with a system message and cannot be moved."
            raise NotRelocatable(msg)

        replies: dict[str, Post] = {}
        async for page_no, page in aenumerate(self._iter_pages(root.id), 1):
            logger.debug(
                "fetched page {} of thread {} ({} posts)", page_no, root.id, len(page)
            )
            for post in page:
                if post.root_id != root.id or post.id == root.id:
                    continue
                if include_system or post.relocatable:
                    # Pages may overlap at their boundaries; keep one copy per id.
                    replies.setdefault(post.id, post)
        # The root leads even if the store stamped a reply with an earlier time.
        return [root, *sorted(replies.values(), key=lambda p: p.sort_key)]
