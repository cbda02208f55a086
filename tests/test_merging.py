from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.fixtures.store import BOT_ID, OFF_TOPIC, TOWN_SQUARE, FakePostStore
from wrangler.errors import Conflict, InvalidOrdering, NotRelocatable, Unsupported
from wrangler.relocation import (
    MergeAttachExecutor,
    PostSetCollector,
    RelocationExecutor,
    ThreadLocks,
    strip_header,
)
from wrangler.relocation.attribution import ORIGINAL_USER_PROP

if TYPE_CHECKING:
    from wrangler.models import Post
    from wrangler.store import PostUpdate


def make_executor(store: FakePostStore) -> MergeAttachExecutor:
    return MergeAttachExecutor(
        store, PostSetCollector(store, page_size=2), ThreadLocks()
    )


@pytest.mark.asyncio
async def test_merge_into_older_thread(store: FakePostStore) -> None:
    older = store.add_thread("q", created_at=50, replies=3)
    younger = store.add_thread("p", created_at=100, replies=4, user_id="bob")

    merged = await make_executor(store).merge("p", "q-r2")

    assert [p.id for p in merged] == [p.id for p in younger]
    thread = store.thread("q")
    assert {p.id for p in thread} == {p.id for p in older + younger}
    assert all(p.root_id == "q" for p in thread[1:])
    assert store.posts["p"].root_id == "q"
    # Authorship and timestamps are untouched.
    for post in younger:
        current = store.posts[post.id]
        assert (current.user_id, current.created_at) == ("bob", post.created_at)
    assert store.creates == 0
    assert store.deleted == []


@pytest.mark.asyncio
async def test_merge_across_channels(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1, channel_id=OFF_TOPIC)
    store.add_thread("p", created_at=100, replies=2)

    await make_executor(store).merge("p", "q")

    assert all(p.channel_id == OFF_TOPIC for p in store.thread("q"))
    assert store.in_channel(TOWN_SQUARE) == []


@pytest.mark.asyncio
async def test_merge_carries_system_replies(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1)
    store.add_thread("p", created_at=100, replies=1)
    store.add_post("join", created_at=150, root_id="p", type_="system_join_channel")

    await make_executor(store).merge("p", "q")

    assert store.posts["join"].root_id == "q"
    assert not [p for p in store.posts.values() if p.root_id == "p"]


@pytest.mark.parametrize("target", ["p", "p-r1", "twin", "later", "later-r1"])
@pytest.mark.asyncio
async def test_merge_rejects_same_or_younger_thread(
    store: FakePostStore, target: str
) -> None:
    store.add_thread("p", created_at=100, replies=2)
    store.add_thread("later", created_at=200, replies=1)
    store.add_post("twin", created_at=100)

    with pytest.raises(InvalidOrdering):
        await make_executor(store).merge("p", target)
    assert store.updates == 0


@pytest.mark.asyncio
async def test_merge_staged_thread_vanished(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1)
    with pytest.raises(Conflict):
        await make_executor(store).merge("p", "q")


@pytest.mark.asyncio
async def test_merge_target_vanished(store: FakePostStore) -> None:
    store.add_thread("p", created_at=100, replies=1)
    with pytest.raises(Conflict):
        await make_executor(store).merge("p", "q")


@pytest.mark.asyncio
async def test_merge_staged_root_became_a_reply(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1)
    store.add_post("o", created_at=10)
    store.add_thread("p", created_at=100, replies=1)
    executor = make_executor(store)
    await executor.merge("p", "o")

    with pytest.raises(Conflict):
        await executor.merge("p", "q")


@pytest.mark.asyncio
async def test_merge_rolls_back_on_failure(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1)
    younger = store.add_thread("p", created_at=100, replies=4)
    store.failing_updates = {3}

    with pytest.raises(Conflict) as exc_info:
        await make_executor(store).merge("p", "q")

    assert exc_info.value.retryable
    assert store.thread("p") == younger
    assert len(store.thread("q")) == 2


@pytest.mark.asyncio
async def test_merge_rollback_failure_is_noted(store: FakePostStore) -> None:
    store.add_thread("q", created_at=50, replies=1)
    store.add_thread("p", created_at=100, replies=4)
    # The third update fails the merge; the first rollback update fails as well.
    store.failing_updates = {3, 4}

    with pytest.raises(Conflict) as exc_info:
        await make_executor(store).merge("p", "q")

    [note] = exc_info.value.__notes__
    assert note.startswith("post p-r1 could not be restored")
    assert store.posts["p-r1"].root_id == "q"
    assert store.posts["p"].root_id == ""


@pytest.mark.asyncio
async def test_attach_to_older_thread(store: FakePostStore) -> None:
    store.add_thread("r", created_at=90, replies=2)
    store.add_post("m", created_at=100, user_id="bob")

    attached = await make_executor(store).attach("m", "r-r1")

    assert attached.root_id == "r"
    assert attached.channel_id == TOWN_SQUARE
    assert (attached.user_id, attached.created_at) == ("bob", 100)
    assert store.updates == 1
    assert [p.id for p in store.thread("r")] == ["r", "r-r1", "r-r2", "m"]


@pytest.mark.asyncio
async def test_attach_to_younger_thread(store: FakePostStore) -> None:
    store.add_post("m", created_at=100)
    store.add_post("r", created_at=110)
    with pytest.raises(InvalidOrdering):
        await make_executor(store).attach("m", "r")
    assert store.posts["m"].is_root


@pytest.mark.asyncio
async def test_attach_to_other_channel(store: FakePostStore) -> None:
    store.add_post("m", created_at=100)
    store.add_post("r", created_at=90, channel_id=OFF_TOPIC)
    with pytest.raises(InvalidOrdering):
        await make_executor(store).attach("m", "r")


@pytest.mark.asyncio
async def test_attach_to_itself(store: FakePostStore) -> None:
    store.add_post("m", created_at=100)
    with pytest.raises(InvalidOrdering):
        await make_executor(store).attach("m", "m")


@pytest.mark.asyncio
async def test_attach_post_that_gained_replies(store: FakePostStore) -> None:
    store.add_post("r", created_at=90)
    store.add_thread("m", created_at=100, replies=1)
    with pytest.raises(Conflict):
        await make_executor(store).attach("m", "r")


@pytest.mark.asyncio
async def test_attach_post_that_became_a_reply(store: FakePostStore) -> None:
    store.add_post("r", created_at=90)
    store.add_post("m", created_at=100, root_id="r")
    with pytest.raises(Conflict):
        await make_executor(store).attach("m", "r")


@pytest.mark.asyncio
async def test_attach_deleted_post(store: FakePostStore) -> None:
    store.add_post("r", created_at=90)
    with pytest.raises(Conflict):
        await make_executor(store).attach("m", "r")


@pytest.mark.asyncio
async def test_attach_system_post(store: FakePostStore) -> None:
    store.add_post("r", created_at=90)
    store.add_post("m", created_at=100, type_="system_join_channel")
    with pytest.raises(NotRelocatable):
        await make_executor(store).attach("m", "r")


def make_recreating_executor(store: FakePostStore) -> MergeAttachExecutor:
    collector = PostSetCollector(store, page_size=2)
    locks = ThreadLocks()
    relocation = RelocationExecutor(
        store, collector, locks, bot_user_id=BOT_ID, move_notice=False
    )
    return MergeAttachExecutor(store, collector, locks, relocation=relocation)


@pytest.mark.asyncio
async def test_attach_recreates_when_host_refuses(store: FakePostStore) -> None:
    store.reparent_unsupported = True
    store.add_thread("r", created_at=90, replies=2)
    store.add_post("m", created_at=100, user_id="bob")

    attached = await make_recreating_executor(store).attach("m", "r-r1")

    assert attached.root_id == "r"
    assert attached.user_id == BOT_ID
    assert attached.props[ORIGINAL_USER_PROP] == "bob"
    assert strip_header(attached.message) == "message m"
    assert store.deleted == ["m"]
    assert [p.id for p in store.thread("r")] == ["r", "r-r1", "r-r2", attached.id]


@pytest.mark.asyncio
async def test_merge_recreates_when_host_refuses(store: FakePostStore) -> None:
    store.reparent_unsupported = True
    older = store.add_thread("q", created_at=50, replies=1, channel_id=OFF_TOPIC)
    younger = store.add_thread("p", created_at=100, replies=3)
    store.add_post("join", created_at=150, root_id="p", type_="system_join_channel")

    merged = await make_recreating_executor(store).merge("p", "q")

    assert [strip_header(p.message) for p in merged] == [p.message for p in younger]
    assert all(p.root_id == "q" and p.channel_id == OFF_TOPIC for p in merged)
    thread = store.thread("q")
    assert [p.id for p in thread] == [p.id for p in older] + [p.id for p in merged]
    assert sorted(store.deleted) == sorted(["join", *(p.id for p in younger)])
    assert store.in_channel(TOWN_SQUARE) == []


@pytest.mark.asyncio
async def test_refused_reparent_without_fallback(store: FakePostStore) -> None:
    store.reparent_unsupported = True
    store.add_thread("q", created_at=50, replies=1)
    younger = store.add_thread("p", created_at=100, replies=2)
    store.add_post("m", created_at=200)
    executor = make_executor(store)

    with pytest.raises(Unsupported):
        await executor.merge("p", "q")
    with pytest.raises(Unsupported):
        await executor.attach("m", "q")

    assert store.thread("p") == younger
    assert store.posts["m"].is_root
    assert store.creates == 0
    assert store.deleted == []


@pytest.mark.asyncio
async def test_refused_reparent_midway_is_a_conflict(
    store: FakePostStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    store.add_thread("q", created_at=50, replies=1)
    store.add_thread("p", created_at=100, replies=2)
    update_post = store.update_post

    async def refuse_after_first(post_id: str, update: PostUpdate) -> Post:
        store.reparent_unsupported = store.updates >= 1
        return await update_post(post_id, update)

    monkeypatch.setattr(store, "update_post", refuse_after_first)

    with pytest.raises(Conflict) as exc_info:
        await make_recreating_executor(store).merge("p", "q")

    # Part of the thread already moved, so recreating the rest would split it.
    assert store.creates == 0
    assert exc_info.value.__notes__ == [
        "post p could not be restored: post p cannot be moved to another thread."
    ]
