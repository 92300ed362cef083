"""Supabase REST sink for freight listings."""

from __future__ import annotations

import logging
import os
import re
from datetime import date, datetime
from http import HTTPStatus
from typing import Any, Protocol

import httpx

from freightflow.core.config import SinkSettings
from freightflow.core.exceptions import SinkError
from freightflow.providers.utils import extract_error_body

logger = logging.getLogger("freightflow.sink")

MATERIALS = {
    "Agroquímicos": "b93fcec6-b173-47d4-be39-52d272bc8a87",
    "Alimentos y bebidas": "97ca010a-6375-40d6-880e-051ba3818516",
    "Fertilizante": "220193b8-bafe-476d-a225-433b567db256",
    "Ganado": "b181d3b8-f92c-44fd-9334-c34041ef29df",
    "Girasol": "bdb09420-ef80-4de0-a038-03285d48fb92",
    "Maiz": "6def5e3b-358d-46e5-9170-8e42a2c97d23",
    "Maquinarias": "4e9efe3d-8eb6-4600-96dd-eb35cbad8699",
    "Materiales construcción": "49ebf50f-d37a-446c-927c-f463fda953e0",
    "Otras cargas generales": "8cd407f6-297e-4730-a1d6-15a2ac485809",
    "Otros cultivos": "c921caf8-5e2b-4fdb-9190-d7fe624771bf",
    "Refrigerados": "176bf83f-3109-431d-8a35-1d157ae4d91f",
    "Soja": "4edee3cb-7308-4d1b-96e7-a378052004e7",
    "Trigo": "04ba66a5-6a87-4243-b8ed-45baf6cfc2e8",
}
PACKAGINGS = {
    "Big Bag": "ca7cf082-837c-4c14-b2ad-c85f0821d86c",
    "Bolsa": "e676ca36-8a96-4338-9a41-2692c18664f5",
    "Granel": "3923f3da-eb7d-4438-8fcd-74d53891c392",
    "Otros": "510db5c8-eb5f-4ef1-b23a-96d4e4869f2d",
    "Pallet": "234a739b-6666-4595-a8df-51e840c09599",
}
EQUIPMENT_TYPES = {
    "Batea": "85bf5951-50a7-4abc-af6e-ea3b9550d97d",
    "Camioneta": "8fa614ad-af82-4909-b0ff-b1d288ea97a3",
    "CamionJaula": "1933f25d-eb8e-43cf-b2e8-5224ab6a4ef2",
    "Carreton": "779ba2a1-f4e3-4121-be59-3e1cdd2c6da8",
    "Chasis y Acoplado": "a16bdd90-df15-4adf-8cc4-7a74ad375ffd",
    "Furgon": "9eb2b303-5c92-45ae-8120-4cc40dd3fa49",
    "Otros": "e1c0cc7d-27fb-4206-9fe3-280ffc40d742",
    "Semi": "be085c4d-f6a5-4f36-b869-9ec606bef794",
    "Tolva": "5939b8d1-71d7-4e37-851b-db388856945e",
}
PAYMENT_METHODS = {
    "Cheque": "48c0c41f-ed88-4b3a-b06d-9a1f03131fe8",
    "E-check": "692684a5-9103-4257-a3e3-6486f907177a",
    "Efectivo": "c96c6cd8-8742-4a8c-9df6-18554a7c87af",
    "Otros": "e0f74bf6-2886-44da-9469-c68ffaf53e4f",
    "Transferencia": "7b998228-2121-465b-9721-679a320e50ae",
}

DEFAULT_MATERIAL = "Otras cargas generales"
DEFAULT_PACKAGING = "Otros"
DEFAULT_EQUIPMENT = "Otros"
DEFAULT_PAYMENT = "Efectivo"

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y")
_PHONE_NOISE = re.compile(r"[\s\-()]")


class ListingSink(Protocol):
    async def create_listings(self, records: list[dict[str, Any]]) -> list[str]: ...


def _lookup(table: dict[str, str], name: Any, default: str) -> str:
    if isinstance(name, str) and name in table:
        return table[name]
    return table[default]


def normalize_phone(phone: Any) -> str:
    """Format an Argentine phone number with its +54 prefix."""
    if not isinstance(phone, str) or not phone.strip():
        return ""
    cleaned = _PHONE_NOISE.sub("", phone)
    if cleaned.startswith("+54"):
        return cleaned
    if cleaned.startswith("54"):
        return f"+{cleaned}"
    if cleaned.startswith("9"):
        return f"+549{cleaned[1:]}"
    return f"+54{cleaned}"


def format_date(value: Any, *, today: date | None = None) -> str:
    """Return an ISO date; unparseable or missing values become today."""
    if isinstance(value, str) and value.strip():
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(value.strip(), fmt).date().isoformat()
            except ValueError:
                continue
    return (today or date.today()).isoformat()


def _text(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class SupabaseSink:
    """Create listings and their locations through the Supabase REST API."""

    def __init__(self, settings: SinkSettings | None = None) -> None:
        self._settings = settings or SinkSettings()
        self._base_url = self._settings.base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def _api_key(self) -> str:
        api_key = os.getenv(self._settings.api_key_env, "")
        if not api_key:
            raise SinkError(f"Supabase API key not configured ({self._settings.api_key_env})")
        return api_key

    def _headers(self, *, write: bool = False) -> dict[str, str]:
        api_key = self._api_key()
        headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
        if write:
            headers["Content-Type"] = "application/json"
            headers["Prefer"] = "return=representation"
        return headers

    async def create_listings(self, records: list[dict[str, Any]]) -> list[str]:
        """Insert every record; stops at the first failure."""
        created: list[str] = []
        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
            for position, record in enumerate(records):
                try:
                    listing_id = await self._create_listing(client, record)
                except httpx.RequestError as exc:
                    raise SinkError(f"failed to create listing {position}: {exc}") from exc
                except SinkError as exc:
                    raise SinkError(f"failed to create listing {position}: {exc.message}") from exc
                created.append(listing_id)
        logger.info(
            "Listings created",
            extra={"event": "sink_listings_created", "count": len(created)},
        )
        return created

    async def _create_listing(self, client: httpx.AsyncClient, record: dict[str, Any]) -> str:
        origin_id = await self._get_or_create_location(client, _text(record, "localidadCarga"))
        destination_id = await self._get_or_create_location(client, _text(record, "localidadDescarga"))
        body = {
            "dador_id": self._settings.dador_id,
            "peso": _text(record, "peso"),
            "ubicacioninicial_id": origin_id,
            "ubicacionfinal_id": destination_id,
            "telefonodador": normalize_phone(record.get("telefono")),
            "puntoreferencia": _text(record, "puntoReferencia"),
            "material_id": _lookup(MATERIALS, record.get("material"), DEFAULT_MATERIAL),
            "presentacion_id": _lookup(PACKAGINGS, record.get("presentacion"), DEFAULT_PACKAGING),
            "valorviaje": _text(record, "precio"),
            "pagopor": "Otros",
            "otropagopor": None,
            "fechacarga": format_date(record.get("fechaCarga")),
            "fechadescarga": format_date(record.get("fechaDescarga")),
            "formadepago_id": _lookup(PAYMENT_METHODS, record.get("formaDePago"), DEFAULT_PAYMENT),
            "email": _text(record, "correo"),
            "tipo_equipo": _lookup(EQUIPMENT_TYPES, record.get("tipoEquipo"), DEFAULT_EQUIPMENT),
            "observaciones": _text(record, "observaciones"),
        }
        response = await client.post(
            f"{self._base_url}/rest/v1/cargas", json=body, headers=self._headers(write=True)
        )
        if response.status_code != HTTPStatus.CREATED:
            raise SinkError(
                f"failed to insert listing: {response.status_code} - {extract_error_body(response)}"
            )
        listing_id = self._extract_id(response)
        if not listing_id:
            raise SinkError("no listing id returned")
        return listing_id

    async def _get_or_create_location(self, client: httpx.AsyncClient, address: str) -> str:
        address = address.strip()
        if not address:
            raise SinkError("location address is empty")
        existing = await self._find_location(client, address)
        if existing:
            return existing
        lat, lng = await self._geocode(client, address)
        location_id = await self._insert_location(client, address, lat, lng)
        logger.info(
            "Location created",
            extra={"event": "sink_location_created", "location_id": location_id},
        )
        return location_id

    async def _find_location(self, client: httpx.AsyncClient, address: str) -> str | None:
        response = await client.get(
            f"{self._base_url}/rest/v1/ubicaciones",
            params={"direccion": f"eq.{address}", "select": "id"},
            headers=self._headers(),
        )
        if response.status_code != HTTPStatus.OK:
            return None
        try:
            rows = response.json()
        except ValueError:
            return None
        if isinstance(rows, list) and rows and isinstance(rows[0], dict):
            value = rows[0].get("id")
            return str(value) if value else None
        return None

    async def _geocode(self, client: httpx.AsyncClient, address: str) -> tuple[float, float]:
        api_key = os.getenv(self._settings.geocoding_api_key_env, "")
        if not api_key:
            raise SinkError(
                f"geocoding API key not configured ({self._settings.geocoding_api_key_env})"
            )
        country = self._settings.country_code
        response = await client.get(
            self._settings.geocoding_url,
            params={
                "address": address,
                "components": f"country:{country}",
                "region": country,
                "key": api_key,
                "language": "es",
            },
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise SinkError(
                "geocoding API did not return JSON; check the API key and quota"
            ) from exc
        status = data.get("status") if isinstance(data, dict) else None
        if status != "OK":
            raise SinkError(f"geocoding failed with status: {status}")
        results = data.get("results") or []
        if not results:
            raise SinkError(f"no geocoding results for: {address}")
        location = results[0].get("geometry", {}).get("location", {})
        try:
            return float(location["lat"]), float(location["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SinkError(f"geocoding result without coordinates for: {address}") from exc

    async def _insert_location(
        self, client: httpx.AsyncClient, address: str, lat: float, lng: float
    ) -> str:
        response = await client.post(
            f"{self._base_url}/rest/v1/ubicaciones",
            params={"select": "id"},
            json={"direccion": address, "lat": lat, "lng": lng},
            headers=self._headers(write=True),
        )
        if response.status_code not in (HTTPStatus.CREATED, HTTPStatus.OK):
            raise SinkError(
                f"failed to insert location: {response.status_code} - {extract_error_body(response)}"
            )
        location_id = self._extract_id(response)
        if not location_id:
            raise SinkError(f"could not extract location id from response: {extract_error_body(response)}")
        return location_id

    @staticmethod
    def _extract_id(response: httpx.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        return None


__all__ = ["ListingSink", "SupabaseSink", "format_date", "normalize_phone"]
