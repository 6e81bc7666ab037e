"""
Observation value resolution.

An observation (or observation component) carries at most one value in the
output. The source row may populate several candidate columns; the first
populated variant wins, in the order quantity -> string -> coded concept.
The decision is made once here and rendered by the chosen variant.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from .constants import UCUM_SYSTEM
from .records import ObservationComponentRecord, ObservationRecord


@dataclass(frozen=True)
class QuantityValue:
    value: Union[int, float]
    unit: Optional[str] = None

    def render(self) -> Dict[str, Any]:
        quantity: Dict[str, Any] = {"value": self.value, "system": UCUM_SYSTEM}
        if self.unit:
            quantity["unit"] = self.unit
            quantity["code"] = self.unit
        return {"valueQuantity": quantity}


@dataclass(frozen=True)
class TextValue:
    value: str

    def render(self) -> Dict[str, Any]:
        return {"valueString": self.value}


@dataclass(frozen=True)
class CodedValue:
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None

    def render(self) -> Dict[str, Any]:
        coding = {
            key: val
            for key, val in (("system", self.system), ("code", self.code), ("display", self.display))
            if val
        }
        concept: Dict[str, Any] = {"coding": [coding]}
        if self.display:
            concept["text"] = self.display
        return {"valueCodeableConcept": concept}


ObservationValue = Union[QuantityValue, TextValue, CodedValue]

Measured = Union[ObservationRecord, ObservationComponentRecord]


def _number(value: Decimal) -> Union[int, float]:
    """Decimal -> JSON number, keeping integers integral."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def resolve_value(record: Measured) -> Optional[ObservationValue]:
    """
    Pick the single value variant of a measurement-bearing record.

    Args:
        record: Observation or observation component

    Returns:
        The first populated variant, or None when no value column is set
    """
    if record.value_quantity is not None:
        return QuantityValue(_number(record.value_quantity), record.value_quantity_unit)

    if record.value_string:
        return TextValue(record.value_string)

    if record.value_code or record.value_code_display:
        return CodedValue(
            system=record.value_code_system,
            code=record.value_code,
            display=record.value_code_display,
        )

    return None


def render_value(record: Measured) -> Dict[str, Any]:
    """Return the ``value[x]`` fragment for a record (empty when absent)."""
    value = resolve_value(record)
    if value is None:
        return {}
    return value.render()
