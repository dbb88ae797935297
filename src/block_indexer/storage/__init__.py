"""
Storage module for persisting indexed blocks.

Provides the sink abstraction the persistence drain writes to, with a
plain-text file implementation and an SQLite implementation.
"""

from .file_sink import FileSink, format_block
from .namespaces import BlockNamespace
from .sink import BlockSink
from .sqlite import SQLiteSink

__all__ = [
    "BlockSink",
    "FileSink",
    "SQLiteSink",
    "BlockNamespace",
    "format_block",
]
