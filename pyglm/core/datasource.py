"""
Universal DataSource for PyGLM.

DataSource is the "I have data" abstraction: a case-indexed table of
named columns. It doesn't know which column is the dependent variable,
a factor or a weight. The GLM design reads it and assigns roles.

Columns are stored as 1D arrays of equal length:
    - numeric columns as float64, missing values as NaN
    - label columns (factor levels given as text) as object arrays,
      missing values as None

Usage:
    from pyglm import DataSource

    ds = DataSource.from_arrays(y=y, group=group, age=age)
    ds = DataSource.from_records([{'y': 1.2, 'group': 'a'}, ...])
    ds = DataSource.from_file("data.csv")
    ds = DataSource.from_dataframe(df)

    ds.keys()          # frozenset({'y', 'group', 'age'})
    ds['group']        # array(['a', 'b', ...], dtype=object)
    ds.is_numeric('age')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pyglm.core.exceptions import DimensionError, ValidationError
from pyglm.core.capabilities import (
    CAPABILITY_CATEGORICAL,
    CAPABILITY_MATERIALIZED,
    CAPABILITY_REPEATABLE,
)

if TYPE_CHECKING:
    import pandas as pd


def _is_missing_label(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == '':
        return True
    return False


def _normalize_column(name: str, values: Any) -> NDArray:
    """Convert one column to float64 (numeric) or object (labels) storage."""
    arr = np.asarray(values)
    if arr.ndim == 0:
        raise DimensionError(f"{name}: expected a 1D column, got a scalar")
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr.ravel()
    if arr.ndim != 1:
        raise DimensionError(f"{name}: expected a 1D column, got shape {arr.shape}")

    if np.issubdtype(arr.dtype, np.number) or arr.dtype == bool:
        return arr.astype(np.float64)

    # Object columns may still be purely numeric with None for missing.
    items = arr.tolist()
    present = [v for v in items if not _is_missing_label(v)]
    if present and all(
        isinstance(v, (int, float, np.number)) and not isinstance(v, bool)
        for v in present
    ):
        return np.array(
            [np.nan if _is_missing_label(v) else float(v) for v in items],
            dtype=np.float64,
        )

    out = np.empty(len(items), dtype=object)
    for i, v in enumerate(items):
        out[i] = None if _is_missing_label(v) else (v.strip() if isinstance(v, str) else v)
    return out


@dataclass
class DataSource:
    """
    Case-indexed column container. Domain-agnostic.

    Construct via factory classmethods, not directly.
    """
    _data: dict[str, NDArray]
    _capabilities: frozenset[str]
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    def keys(self) -> frozenset[str]:
        """Return the names of all available columns."""
        return frozenset(self._data.keys())

    def __getitem__(self, key: str) -> NDArray:
        """
        Access a named column.

        Raises:
            KeyError: If key not found, listing the available columns
        """
        if key not in self._data:
            raise KeyError(
                f"DataSource has no column '{key}'. Available: {sorted(self.keys())}"
            )
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def is_numeric(self, key: str) -> bool:
        """True if the column is stored as float64."""
        return self[key].dtype == np.float64

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of cases (rows)."""
        return self._metadata.get('n_observations', 0)

    @property
    def metadata(self) -> dict[str, Any]:
        return self._metadata.copy()

    def supports(self, capability: str) -> bool:
        """
        Check if this DataSource supports a capability.

        Unknown capabilities return False, never raise.
        """
        return capability in self._capabilities

    # === Factory Methods ===

    @classmethod
    def _from_columns(
        cls,
        columns: Mapping[str, Any],
        metadata: dict[str, Any],
    ) -> DataSource:
        storage: dict[str, NDArray] = {}
        n_obs: int | None = None
        for name, values in columns.items():
            col = _normalize_column(str(name), values)
            if n_obs is None:
                n_obs = col.shape[0]
            elif col.shape[0] != n_obs:
                raise DimensionError(
                    f"{name}: length {col.shape[0]} doesn't match {n_obs} cases"
                )
            storage[str(name)] = col

        capabilities = {CAPABILITY_MATERIALIZED, CAPABILITY_REPEATABLE}
        if any(col.dtype == object for col in storage.values()):
            capabilities.add(CAPABILITY_CATEGORICAL)

        metadata = dict(metadata)
        metadata['n_observations'] = n_obs or 0
        metadata['columns'] = list(storage.keys())
        return cls(
            _data=storage,
            _capabilities=frozenset(capabilities),
            _metadata=metadata,
        )

    @classmethod
    def from_arrays(cls, **columns: Any) -> DataSource:
        """Construct from named 1D array-likes."""
        if not columns:
            raise ValidationError("from_arrays: at least one column is required")
        return cls._from_columns(columns, {'source': 'arrays'})

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> DataSource:
        """
        Construct from row dictionaries (e.g. parsed JSON cases).

        A key absent from a record is treated as missing for that case.
        """
        rows = list(records)
        if not rows:
            raise ValidationError("from_records: no records given")
        names: list[str] = []
        for row in rows:
            for key in row:
                if key not in names:
                    names.append(key)
        columns = {name: [row.get(name) for row in rows] for name in names}
        return cls._from_columns(columns, {'source': 'records'})

    @classmethod
    def from_file(cls, path: str | Path, *, columns: list[str] | None = None) -> DataSource:
        """Construct from a CSV/TSV file."""
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix in ('.csv', '.tsv'):
            import pandas as pd
            sep = '\t' if suffix == '.tsv' else ','
            df = pd.read_csv(path, usecols=columns, sep=sep)
            return cls.from_dataframe(df, source_path=str(path))
        raise ValidationError(f"Unknown file format: {suffix}")

    @classmethod
    def from_dataframe(cls, df: 'pd.DataFrame', *, source_path: str | None = None) -> DataSource:
        """Construct from a pandas DataFrame. Numeric columns keep NaN for missing."""
        import pandas as pd

        columns: dict[str, Any] = {}
        for col in df.columns:
            series = df[col]
            if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
                columns[str(col)] = series.to_numpy(dtype=np.float64, na_value=np.nan)
            else:
                columns[str(col)] = series.astype(object).where(series.notna(), None).to_numpy()

        metadata: dict[str, Any] = {'source': 'dataframe'}
        if source_path:
            metadata['source_path'] = source_path
        return cls._from_columns(columns, metadata)

    @classmethod
    def build(cls, *args: Any, **kwargs: Any) -> DataSource:
        """
        Convenience factory that dispatches to the appropriate from_* method.

        Examples:
            DataSource.build(y=y, group=group)   # from_arrays
            DataSource.build("data.csv")         # from_file
            DataSource.build(df)                 # from_dataframe
            DataSource.build(records)            # from_records
        """
        if args:
            first = args[0]
            if isinstance(first, (str, Path)):
                return cls.from_file(first, **kwargs)
            if hasattr(first, 'columns') and hasattr(first, 'dtypes'):
                return cls.from_dataframe(first, **kwargs)
            return cls.from_records(first)
        return cls.from_arrays(**kwargs)
