from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

import httpx
from loguru import logger

from wrangler.errors import Forbidden, NotFound, StoreError, Unsupported
from wrangler.models import Channel, Post, User
from wrangler.store import ReplyPage

if TYPE_CHECKING:
    from types import TracebackType

    from wrangler.config import Config
    from wrangler.store import PostDraft, PostUpdate


def _check(resp: httpx.Response, what: str) -> httpx.Response:
    if resp.is_success:
        return resp
    match resp.status_code:
        case 404:
            msg = f"{what} does not exist."
            raise NotFound(msg)
        case 401 | 403:
            msg = f"Wrangler is not allowed to access {what}."
            raise Forbidden(msg)
        case _:
            logger.warning(
                "{} {} failed with {}: {}",
                resp.request.method,
                resp.request.url.path,
                resp.status_code,
                resp.text,
            )
            msg = f"The server failed to handle {what} (HTTP {resp.status_code})."
            raise StoreError(msg)


class MattermostStore:
    """PostStore backed by the Mattermost REST API (v4)."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config) -> Self:
        return cls(config.api_url, config.token.get_secret_value())

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, path: str, what: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            msg = f"Could not reach the server while handling {what}."
            raise StoreError(msg) from e
        return _check(resp, what)

    async def _get_json(self, path: str, what: str) -> dict[str, Any]:
        return (await self._request("GET", path, what)).json()

    async def get_post(self, post_id: str) -> Post:
        return Post.model_validate(
            await self._get_json(f"/posts/{post_id}", f"post {post_id}")
        )

    async def get_replies(
        self, root_id: str, *, after: Post | None = None, per_page: int = 200
    ) -> ReplyPage:
        params: dict[str, str | int] = {"perPage": per_page, "direction": "down"}
        if after is not None:
            params |= {"fromPost": after.id, "fromCreateAt": after.created_at}
        data = (
            await self._request(
                "GET", f"/posts/{root_id}/thread", f"thread {root_id}", params=params
            )
        ).json()
        posts = [
            post
            for raw in data.get("posts", {}).values()
            if (post := Post.model_validate(raw)).id != root_id
            and (after is None or post.sort_key > after.sort_key)
        ]
        posts.sort(key=lambda p: p.sort_key)
        return ReplyPage(posts, has_next=bool(data.get("has_next", False)))

    async def create_post(self, draft: PostDraft) -> Post:
        body: dict[str, Any] = {
            "channel_id": draft.channel_id,
            "root_id": draft.root_id,
            "message": draft.message,
            "props": draft.props,
        }
        if draft.create_at is not None:
            body["create_at"] = draft.create_at
        resp = await self._request(
            "POST", "/posts", f"a new post in channel {draft.channel_id}", json=body
        )
        return Post.model_validate(resp.json())

    async def update_post(self, post_id: str, update: PostUpdate) -> Post:
        what = f"post {post_id}"
        # PUT replaces the whole post, so start from what the server currently has.
        raw = await self._get_json(f"/posts/{post_id}", what)
        if update.root_id is not None:
            raw["root_id"] = update.root_id
        if update.channel_id is not None:
            raw["channel_id"] = update.channel_id
        if update.props is not None:
            raw["props"] = (raw.get("props") or {}) | update.props
        resp = await self._request("PUT", f"/posts/{post_id}", what, json=raw)
        post = Post.model_validate(resp.json())
        # The server only applies message, props and file changes; everything else is
        # silently taken from the stored post.
        if (update.root_id is not None and post.root_id != update.root_id) or (
            update.channel_id is not None and post.channel_id != update.channel_id
        ):
            logger.warning(
                "server kept post {} in thread {!r} of {}",
                post_id,
                post.root_id,
                post.channel_id,
            )
            msg = f"The server cannot move {what} to another thread or channel."
            raise Unsupported(msg)
        return post

    async def delete_post(self, post_id: str) -> None:
        await self._request("DELETE", f"/posts/{post_id}", f"post {post_id}")

    async def get_channel(self, channel_id: str) -> Channel:
        return Channel.model_validate(
            await self._get_json(f"/channels/{channel_id}", f"channel {channel_id}")
        )

    async def get_user(self, user_id: str) -> User:
        return User.model_validate(
            await self._get_json(f"/users/{user_id}", f"user {user_id}")
        )
