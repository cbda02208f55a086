from tests.fixtures import store, wrangler_env

__all__ = ("store", "wrangler_env")
