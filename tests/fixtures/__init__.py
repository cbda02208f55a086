from .config import WRANGLER_ENV, safe_environ, wrangler_env
from .store import FakePostStore, make_store, store

__all__ = (
    "WRANGLER_ENV",
    "FakePostStore",
    "make_store",
    "safe_environ",
    "store",
    "wrangler_env",
)
