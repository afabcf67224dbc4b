"""Type aliases for crossstore package.

Reusable type definitions for keys, records and filter maps shared by the
compilers and operation façades.
"""

from typing import Any, Dict, List, Mapping, Sequence, Union

# Record key types - single id or composite key (column -> value)
RecordKey = Union[str, Mapping[str, Any]]
CompositeKey = Mapping[str, Any]

# Row / document shapes after normalization
Record = Dict[str, Any]
Records = List[Record]

# Filter map: field -> scalar | list | operator sub-map
FilterValue = Union[str, int, float, bool, Sequence[Any], Mapping[str, Any]]
FilterMap = Mapping[str, FilterValue]
