"""Backend compilers.

Each compiler module exposes a class and a ready-to-use singleton.
"""

from .base import BaseCompiler
from .cassandra import CassandraStatementCompiler, CompiledBatch, CompiledStatement, cassandra_compiler
from .elasticsearch import CompiledSearch, SearchQueryCompiler, search_compiler

__all__ = (
    "BaseCompiler",
    "CassandraStatementCompiler",
    "CompiledBatch",
    "CompiledStatement",
    "cassandra_compiler",
    "CompiledSearch",
    "SearchQueryCompiler",
    "search_compiler",
)
