"""Two-case result type returned by the attainment calculators."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NotFound:
    """A referenced course, outcome, program or batch does not exist"""
    entity: str
    entity_id: Any

    def __bool__(self):
        return False

    @property
    def message(self):
        return f"{self.entity} {self.entity_id} not found"


@dataclass(frozen=True)
class Computed:
    """A calculation that ran; `value` may still hold defined zeros"""
    value: Any

    def __bool__(self):
        return True
