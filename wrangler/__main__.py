import asyncio
from contextlib import suppress

from loguru import logger

from wrangler import log
from wrangler.config import Config
from wrangler.core import Wrangler
from wrangler.errors import WranglerError, handle_error
from wrangler.store.mattermost import MattermostStore


async def main(config: Config) -> None:
    log.setup(config)

    async with MattermostStore.from_config(config) as store:
        wrangler = Wrangler.from_config(store, config)
        try:
            bot = await store.get_user(config.bot_user_id)
        except WranglerError as e:
            handle_error(e)
            raise SystemExit(1) from e
        logger.info(
            "connected to {} as {} (merging {})",
            config.server_url,
            bot.mention,
            "enabled" if wrangler.merge_enabled else "disabled",
        )


# https://github.com/pydantic/pydantic-settings/issues/201
config = Config()  # pyright: ignore[reportCallIssue]

with suppress(KeyboardInterrupt):
    asyncio.run(main(config))
