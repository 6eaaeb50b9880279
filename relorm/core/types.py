"""Type aliases shared by the builder, the ports and the loading strategies."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

NamedParams = Dict[str, Any]
PositionalParams = List[Any]
QueryParams = Union[NamedParams, PositionalParams, None]

RowMapping = Mapping[str, Any]
Rows = List[RowMapping]
MaybeRow = Optional[RowMapping]

# Column name -> value, as written by INSERT/UPDATE.
ColumnValues = Dict[str, Any]

# A primary-key value: the bare value for single keys, a tuple for composite keys.
KeyValue = Union[Any, Tuple[Any, ...]]
