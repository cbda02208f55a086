from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from wrangler.models import Channel, Post, User

__all__ = ("PostDraft", "PostStore", "PostUpdate", "ReplyPage")


@dataclass(frozen=True, slots=True, kw_only=True)
class PostDraft:
    channel_id: str
    user_id: str
    message: str
    root_id: str = ""
    props: dict[str, Any] = field(default_factory=dict[str, Any])
    # Only a hint: the store assigns the real timestamp and may ignore this entirely.
    create_at: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class PostUpdate:
    root_id: str | None = None
    channel_id: str | None = None
    props: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class ReplyPage:
    posts: list[Post]
    has_next: bool


class PostStore(Protocol):
    """
    The host message store. Implementations raise wrangler.errors.NotFound for
    absent posts, channels and users, wrangler.errors.Forbidden when the host refuses
    an operation, and wrangler.errors.StoreError for every other failure.
    update_post raises wrangler.errors.Unsupported when the host keeps a post in its
    old thread or channel.
    """

    async def get_post(self, post_id: str) -> Post: ...

    async def get_replies(
        self, root_id: str, *, after: Post | None = None, per_page: int = 200
    ) -> ReplyPage:
        """
        Return the replies of `root_id` created after `after` (all of them when
        None), oldest first. The root itself is never part of the page.
        """
        ...

    async def create_post(self, draft: PostDraft) -> Post: ...

    async def update_post(self, post_id: str, update: PostUpdate) -> Post: ...

    async def delete_post(self, post_id: str) -> None: ...

    async def get_channel(self, channel_id: str) -> Channel: ...

    async def get_user(self, user_id: str) -> User: ...
