from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# The host prefixes the ids of the synthetic posts it builds to summarize a run of
# join/leave events.
COMBINED_ACTIVITY_ID_PREFIX = "user-activity-"
COMBINED_ACTIVITY_TYPE = "system_combined_user_activity"
SYSTEM_TYPE_PREFIX = "system_"


class MessageType(StrEnum):
    ORDINARY = "ordinary"
    SYSTEM = "system"
    COMBINED_ACTIVITY = "combined_activity"


class Post(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    root_id: str = ""
    channel_id: str
    user_id: str
    created_at: int = Field(alias="create_at")
    type: str = ""
    message: str = ""
    props: dict[str, Any] = Field(default_factory=dict)

    @field_validator("props", mode="before")
    @classmethod
    def null_props(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def is_root(self) -> bool:
        return not self.root_id

    @property
    def thread_root_id(self) -> str:
        return self.root_id or self.id

    @property
    def message_type(self) -> MessageType:
        if self.type == COMBINED_ACTIVITY_TYPE or self.id.startswith(
            COMBINED_ACTIVITY_ID_PREFIX
        ):
            return MessageType.COMBINED_ACTIVITY
        if self.type.startswith(SYSTEM_TYPE_PREFIX):
            return MessageType.SYSTEM
        return MessageType.ORDINARY

    @property
    def relocatable(self) -> bool:
        return self.message_type is MessageType.ORDINARY

    @property
    def sort_key(self) -> tuple[int, str]:
        # Ties on the store-assigned timestamp are broken by id to keep the order total.
        return self.created_at, self.id


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    nickname: str = ""

    @property
    def mention(self) -> str:
        return f"@{self.username}"


class Channel(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    display_name: str = ""
    team_id: str = ""

    @property
    def mention(self) -> str:
        return f"~{self.name}"


@dataclass(frozen=True, slots=True)
class RichSelection:
    post: Post
    author: User
    channel: Channel


class StageKind(StrEnum):
    ATTACH = "attach"
    MERGE = "merge"


@dataclass(frozen=True, slots=True, kw_only=True)
class StagingSlot:
    owner_id: str
    selection: RichSelection
    kind: StageKind
    staged_at: dt.datetime = field(default_factory=lambda: dt.datetime.now(tz=dt.UTC))


class RelocationTarget(NamedTuple):
    channel_id: str
    root_id: str | None = None


@dataclass(slots=True, kw_only=True)
class RelocationResult:
    source_root_id: str
    destination_channel_id: str
    # Set when the posts become replies of an existing thread.
    destination_root_id: str | None = None
    # Insertion order follows the original thread order.
    created: dict[str, str] = field(default_factory=dict[str, str])
    failed: list[str] = field(default_factory=list[str])
    pending: list[str] = field(default_factory=list[str])
    left_in_place: list[str] = field(default_factory=list[str])

    @property
    def new_root_id(self) -> str | None:
        if self.destination_root_id is not None:
            return self.destination_root_id
        return next(iter(self.created.values()), None)

    @property
    def target(self) -> RelocationTarget:
        return RelocationTarget(self.destination_channel_id, self.new_root_id)
