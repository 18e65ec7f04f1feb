"""Row-store collaborators for the engine."""

from .base import UPDATABLE_PAGE_FIELDS, PageStore
from .memory import InMemoryPageStore
from .rest import RestPageStore
from .transport import RestTransport

__all__ = [
    "UPDATABLE_PAGE_FIELDS",
    "InMemoryPageStore",
    "PageStore",
    "RestPageStore",
    "RestTransport",
]
