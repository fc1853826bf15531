from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .wire import WireProtocolError

ADMIN_PREFIX = "[admin] "
RESERVED_DATASET_ID = 1


class CompilerStatus(str, Enum):
    """Compilation state of a submitted query."""

    WAITING = "Waiting"
    RUNNING = "Running"
    FINISHED = "Finished"
    ERROR = "Error"


class ExecutionStatus(str, Enum):
    """Execution state of a compiled query."""

    WAITING = "Waiting"
    RUNNING = "Running"
    FINISHED = "Finished"
    ERROR = "Error"


def strip_admin_prefix(name: str) -> str:
    """Remove the conventional restricted-dataset prefix if present."""
    if name.startswith(ADMIN_PREFIX):
        return name[len(ADMIN_PREFIX) :]
    return name


@dataclass(frozen=True)
class Dataset:
    """An input dataset queries run against."""

    id: int
    name: str

    @property
    def is_admin(self) -> bool:
        return self.name.startswith(ADMIN_PREFIX)

    @property
    def base_name(self) -> str:
        return strip_admin_prefix(self.name)

    def matches(self, name: str) -> bool:
        """Compare names with the admin prefix stripped on both sides."""
        return self.name == name or self.base_name == strip_admin_prefix(name)

    def to_wire(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_wire(cls, value: Any) -> "Dataset":
        if not isinstance(value, Mapping):
            raise WireProtocolError(f"expected dataset struct, got {value!r}")
        try:
            return cls(id=int(value["id"]), name=str(value["name"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise WireProtocolError(f"invalid dataset struct: {value!r}") from exc


def parse_status(enum_type: type, value: Any) -> Any:
    """Map a wire status string onto `enum_type`."""
    try:
        return enum_type(str(value))
    except ValueError:
        raise WireProtocolError(
            f"unknown {enum_type.__name__} value: {value!r}"
        ) from None
