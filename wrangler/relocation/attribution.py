from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, NamedTuple, final

from wrangler.utils import MAX_POST_LENGTH, format_timestamp, truncate

if TYPE_CHECKING:
    from wrangler.models import Channel, Post, User

ORIGINAL_USER_PROP = "wrangler_original_user_id"
ORIGINAL_CREATE_AT_PROP = "wrangler_original_create_at"
ORIGINAL_CHANNEL_PROP = "wrangler_original_channel_id"
MOVED_TO_PROP = "wrangler_moved_to"

_HEADER_REGEX = re.compile(r"> \*Originally posted by [^\n]*\*(?:\n\n|\n|$)")


class Origin(NamedTuple):
    user_id: str
    created_at: int
    channel_id: str


def find_origin(post: Post, bot_user_id: str) -> Origin | None:
    """
    Return where a post originally came from if it is itself the product of an
    earlier relocation, so that moving it again credits the real author rather than
    the bot.
    """
    if post.user_id != bot_user_id:
        return None
    props = post.props
    try:
        return Origin(
            str(props[ORIGINAL_USER_PROP]),
            int(props[ORIGINAL_CREATE_AT_PROP]),
            str(props[ORIGINAL_CHANNEL_PROP]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def origin_of(post: Post, bot_user_id: str) -> Origin:
    return find_origin(post, bot_user_id) or Origin(
        post.user_id, post.created_at, post.channel_id
    )


def strip_header(message: str) -> str:
    # HACK: the header is only recognized at the very start of the message, which is
    # the only place this module ever puts it.
    if match := _HEADER_REGEX.match(message):
        return message[match.end() :]
    return message


@final
class AttributionHeader:
    def __init__(
        self,
        origin: Origin,
        author: User,
        channel: Channel,
        executor: User | None = None,
    ) -> None:
        self.origin = origin
        self.author = author.mention
        self.channel = channel.mention
        self.timestamp = format_timestamp(origin.created_at)
        self.move_hint = f"moved by {executor.mention}" if executor is not None else ""

    def format(self) -> str:
        context = (
            f"Originally posted by {self.author} in {self.channel} on {self.timestamp}",
            self.move_hint,
        )
        return f"> *{' • '.join(filter(None, context))}*"

    def apply(self, message: str) -> str:
        header = self.format()
        body = strip_header(message)
        # Subtract two to account for the blank line between the header and the body.
        body = truncate(body, MAX_POST_LENGTH - len(header) - 2)
        return f"{header}\n\n{body}" if body else header

    @property
    def props(self) -> dict[str, Any]:
        return {
            ORIGINAL_USER_PROP: self.origin.user_id,
            ORIGINAL_CREATE_AT_PROP: self.origin.created_at,
            ORIGINAL_CHANNEL_PROP: self.origin.channel_id,
        }
