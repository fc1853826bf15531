from __future__ import annotations

"""Helpers for dataset filtering and human-readable sizes."""

from typing import Callable, Iterable, List, Sequence, Union

from .models import Dataset

DatasetFilter = Callable[[Dataset], bool]
DatasetFilters = Union[DatasetFilter, Sequence[DatasetFilter], None]

_SIZE_UNITS = ("", "k", "M", "G", "T")


def admin_filter(dataset: Dataset) -> bool:
    """Keep only datasets without the `[admin] ` prefix."""
    return not dataset.is_admin


def name_filter(text: str) -> DatasetFilter:
    """Build a case-insensitive substring filter on dataset names."""
    needle = text.lower()

    def _matches(dataset: Dataset) -> bool:
        return needle in dataset.name.lower()

    return _matches


def apply_filters(datasets: Iterable[Dataset], filters: DatasetFilters = None) -> List[Dataset]:
    """Apply zero, one, or a sequence of filters, each narrowing the last."""
    result = list(datasets)
    if filters is None:
        return result
    if callable(filters):
        filters = [filters]
    for predicate in filters:
        result = [dataset for dataset in result if predicate(dataset)]
    return result


def format_size(size: int) -> str:
    """Render a byte count as e.g. `512`, `1k`, `64k`, `4.9k`, `2M`."""
    if size < 0:
        raise ValueError("size cannot be negative")
    value = float(size)
    unit_index = 0
    while value >= 1000 and unit_index < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1
    if unit_index == 0:
        return "%d" % size
    text = "%.1f" % value
    if text.endswith(".0"):
        text = text[:-2]
    return text + _SIZE_UNITS[unit_index]
