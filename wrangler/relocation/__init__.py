from .attribution import AttributionHeader, Origin, find_origin, strip_header
from .collector import PostSetCollector
from .executor import RelocationExecutor
from .locks import ThreadLocks
from .merging import MergeAttachExecutor
from .validator import Action, ActionContext, offered_actions

__all__ = (
    "Action",
    "ActionContext",
    "AttributionHeader",
    "MergeAttachExecutor",
    "Origin",
    "PostSetCollector",
    "RelocationExecutor",
    "ThreadLocks",
    "find_origin",
    "offered_actions",
    "strip_header",
)
