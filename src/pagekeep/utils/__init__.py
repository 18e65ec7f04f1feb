from .chunk import chunk_ids
from .redact import redact

__all__ = [
    "chunk_ids",
    "redact",
]
