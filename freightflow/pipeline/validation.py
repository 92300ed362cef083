"""Domain acceptance rules for extracted freight listings."""

from __future__ import annotations

import json
from typing import Any

from freightflow.core.config import GeofenceSettings
from freightflow.core.exceptions import PayloadValidationError


class ListingValidator:
    """Reject any batch whose listings fall outside the configured geofence."""

    def __init__(self, geofence: GeofenceSettings | None = None) -> None:
        settings = geofence or GeofenceSettings()
        self._required = settings.required_country.lower()
        self._fields = list(settings.location_fields)
        self._forbidden = [item.lower() for item in settings.forbidden_countries]
        self._exceptions = [item.lower() for item in settings.exceptions]
        self._unknown = [item.lower() for item in settings.unknown_terms]

    def validate(self, canonical: str) -> list[dict[str, Any]]:
        """Parse canonical JSON text and check every element.

        Raises ``PayloadValidationError`` naming the first offending element (0-based)
        and field. An empty array is valid.
        """
        try:
            records = json.loads(canonical)
        except json.JSONDecodeError as exc:
            raise PayloadValidationError(f"failed to parse JSON for validation: {exc.msg}") from exc
        if not isinstance(records, list):
            raise PayloadValidationError("canonical payload must be a JSON array")

        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise PayloadValidationError(
                    f"record {index}: expected an object", index=index
                )
            for field in self._fields:
                self._check_location(index, field, record.get(field))
        return records

    def _check_location(self, index: int, field: str, value: Any) -> None:
        if not isinstance(value, str) or not value.strip():
            raise PayloadValidationError(f"record {index}: {field} is empty", index=index, field=field)

        lowered = value.lower()
        if self._required and self._required not in lowered:
            raise PayloadValidationError(
                f"record {index}: {field} '{value}' does not contain '{self._required}'",
                index=index,
                field=field,
            )

        if not any(exception in lowered for exception in self._exceptions):
            for country in self._forbidden:
                if country in lowered:
                    raise PayloadValidationError(
                        f"record {index}: {field} mentions '{country}'",
                        index=index,
                        field=field,
                    )

        for term in self._unknown:
            if term in lowered:
                raise PayloadValidationError(
                    f"record {index}: {field} contains '{term}', location is not known",
                    index=index,
                    field=field,
                )


def validate(canonical: str, geofence: GeofenceSettings | None = None) -> list[dict[str, Any]]:
    return ListingValidator(geofence).validate(canonical)


__all__ = ["ListingValidator", "validate"]
