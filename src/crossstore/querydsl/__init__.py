"""Filter DSL and backend query compilers.

`crossstore.querydsl.filters` classifies filter values; the compilers under
`crossstore.querydsl.compilers` turn them into CQL statements or
Elasticsearch query bodies.
"""
