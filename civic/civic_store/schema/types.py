"""
Schema types for stored collections.

This module provides the field-level description of each collection:
- CollectionDef: Definition of a collection and its fields
- FieldDef: Individual field definition
- UNSET: Sentinel for "no value supplied"

The definitions drive write sanitization and validation in the repository
layer. Field names are the stored (camelCase) document keys.

Invariants:
    - UNSET never reaches the store; sanitize() drops it
    - An optional string that was explicitly cleared is stored as None,
      never omitted, so "blanked" and "never set" stay distinguishable
    - enum_values can only be appended

Example:
    >>> Referral = CollectionDef(
    ...     name="referrals",
    ...     fields=(
    ...         field("referralCode", "str", required=True),
    ...         field("status", "enum", enum_values=("invited", "signed_up")),
    ...     ),
    ... )
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any


class _Unset:
    """Type of the UNSET sentinel."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class FieldKind(Enum):
    """Supported field types."""

    STRING = "str"
    INTEGER = "int"
    BOOLEAN = "bool"
    TIMESTAMP = "timestamp"
    ENUM = "enum"
    LIST = "list"
    MAP = "map"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string to FieldKind."""
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Invalid field kind: {value}")


_PYTHON_TYPES: dict[FieldKind, tuple[type, ...]] = {
    FieldKind.STRING: (str,),
    FieldKind.INTEGER: (int,),
    FieldKind.BOOLEAN: (bool,),
    FieldKind.TIMESTAMP: (datetime,),
    FieldKind.ENUM: (str,),
    FieldKind.LIST: (list, tuple),
    FieldKind.MAP: (dict,),
}


@dataclass(frozen=True)
class FieldDef:
    """Field definition within a collection.

    Attributes:
        name: Stored document key
        kind: Data type
        required: Whether the field must be present and non-null on create
        default: Default value applied on create
        enum_values: Valid values for enum type
        description: Documentation
    """

    name: str
    kind: FieldKind
    required: bool = False
    default: Any = None
    enum_values: tuple[str, ...] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field."""
        if value is None:
            if self.required:
                return False, f"Field '{self.name}' is required"
            return True, None

        expected = _PYTHON_TYPES[self.kind]
        # bool is an int subclass; keep them apart
        if self.kind == FieldKind.INTEGER and isinstance(value, bool):
            return False, f"Field '{self.name}' must be of kind {self.kind.value}"
        if not isinstance(value, expected):
            return False, f"Field '{self.name}' must be of kind {self.kind.value}"

        if self.kind == FieldKind.ENUM:
            if self.enum_values is not None and value not in self.enum_values:
                return False, f"Field '{self.name}' must be one of {self.enum_values}"

        return True, None


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    default: Any = None,
    enum_values: tuple[str, ...] | None = None,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> title = field("title", "str", required=True)
        >>> status = field("status", "enum", enum_values=("pending", "approved"))
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        default=default,
        enum_values=enum_values,
        description=description,
    )


@dataclass(frozen=True)
class CollectionDef:
    """Definition of a stored collection.

    Every collection implicitly carries ``id``, ``createdAt`` and
    ``updatedAt``; they are managed by the repository.

    Attributes:
        name: Collection name in the store
        fields: Tuple of field definitions
        description: Documentation
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    description: str = ""

    MANAGED_FIELDS = ("id", "createdAt", "updatedAt")

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Collection name cannot be empty")
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in collection '{self.name}'")

    def get_field(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def sanitize(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Prepare a payload for writing.

        Drops UNSET values and turns blank optional strings into None.
        """
        clean: dict[str, Any] = {}
        for key, value in payload.items():
            if value is UNSET:
                continue
            f = self.get_field(key)
            if (
                f is not None
                and f.kind == FieldKind.STRING
                and not f.required
                and isinstance(value, str)
                and not value.strip()
            ):
                value = None
            clean[key] = value
        return clean

    def validate_payload(
        self, payload: dict[str, Any], partial: bool = False
    ) -> tuple[bool, list[str]]:
        """Validate a payload against this collection.

        Args:
            payload: Sanitized field values
            partial: Only validate supplied fields (updates)
        """
        errors: list[str] = []

        known = set(self.get_field_names()) | set(self.MANAGED_FIELDS)
        unknown = set(payload.keys()) - known
        if unknown:
            errors.append(f"Unknown fields: {sorted(unknown)}")

        for f in self.fields:
            if partial and f.name not in payload:
                continue
            value = payload.get(f.name, f.default)
            is_valid, error = f.validate_value(value)
            if not is_valid and error:
                errors.append(error)

        return len(errors) == 0, errors

    def with_defaults(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Fill defaults for fields absent from the payload."""
        result = dict(payload)
        for f in self.fields:
            if f.name not in result and f.default is not None:
                result[f.name] = copy.deepcopy(f.default)
        return result
