from __future__ import annotations

from datetime import date
from http import HTTPStatus

import pytest

from freightflow.core.config import SinkSettings
from freightflow.core.exceptions import SinkError
from freightflow.sink import supabase
from freightflow.sink.supabase import SupabaseSink, format_date, normalize_phone
from tests.factories import FakeResponse, stub_async_client

BASE_URL = "https://db.example.supabase.co"
RECORD = {
    "material": "Soja",
    "presentacion": "Granel",
    "peso": "30000",
    "tipoEquipo": "Tolva",
    "localidadCarga": "Rosario, Santa Fe, Argentina",
    "localidadDescarga": "Córdoba, Córdoba, Argentina",
    "fechaCarga": "15/03/2025",
    "fechaDescarga": "2025-03-17",
    "telefono": "9 341 555-1234",
    "correo": "dador@example.com",
    "precio": "850000",
    "formaDePago": "Bitcoin",
    "observaciones": "Carga urgente",
}


@pytest.fixture
def settings(monkeypatch) -> SinkSettings:
    monkeypatch.setenv("TEST_SUPABASE_KEY", "service-key")
    monkeypatch.setenv("TEST_MAPS_KEY", "maps-key")
    return SinkSettings(
        base_url=f"{BASE_URL}/",
        api_key_env="TEST_SUPABASE_KEY",
        geocoding_api_key_env="TEST_MAPS_KEY",
        dador_id="dador-1",
    )


def _router(*, known: set[str], listing_status: int = HTTPStatus.CREATED):
    def handler(call):
        url = call["url"]
        if url.endswith("/rest/v1/ubicaciones") and call["method"] == "GET":
            address = call["params"]["direccion"].removeprefix("eq.")
            rows = [{"id": f"loc-{address.split(',')[0]}"}] if address in known else []
            return FakeResponse(HTTPStatus.OK, rows)
        if url.endswith("/rest/v1/ubicaciones"):
            return FakeResponse(HTTPStatus.CREATED, [{"id": "loc-new"}])
        if "geocode" in url:
            return FakeResponse(
                HTTPStatus.OK,
                {"status": "OK", "results": [{"geometry": {"location": {"lat": -31.4, "lng": -64.2}}}]},
            )
        if url.endswith("/rest/v1/cargas"):
            if listing_status != HTTPStatus.CREATED:
                return FakeResponse(listing_status, text="violates foreign key")
            return FakeResponse(HTTPStatus.CREATED, [{"id": "carga-1"}])
        raise AssertionError(f"unexpected call {call}")

    return handler


@pytest.mark.asyncio
async def test_create_listing_resolves_locations_and_vocabulary(monkeypatch, settings):
    recorder: list[dict] = []
    handler = _router(known={"Rosario, Santa Fe, Argentina"})
    monkeypatch.setattr(supabase.httpx, "AsyncClient", stub_async_client(handler, recorder))

    ids = await SupabaseSink(settings).create_listings([RECORD])

    assert ids == ["carga-1"]
    geocode = next(call for call in recorder if "geocode" in call["url"])
    assert geocode["params"]["components"] == "country:AR"
    assert geocode["params"]["key"] == "maps-key"
    inserted_location = next(
        call for call in recorder if call["method"] == "POST" and call["url"].endswith("ubicaciones")
    )
    assert inserted_location["json"] == {
        "direccion": "Córdoba, Córdoba, Argentina",
        "lat": -31.4,
        "lng": -64.2,
    }

    listing = recorder[-1]
    assert listing["url"] == f"{BASE_URL}/rest/v1/cargas"
    assert listing["headers"]["apikey"] == "service-key"
    assert listing["headers"]["Prefer"] == "return=representation"
    body = listing["json"]
    assert body["ubicacioninicial_id"] == "loc-Rosario"
    assert body["ubicacionfinal_id"] == "loc-new"
    assert body["material_id"] == supabase.MATERIALS["Soja"]
    assert body["presentacion_id"] == supabase.PACKAGINGS["Granel"]
    assert body["tipo_equipo"] == supabase.EQUIPMENT_TYPES["Tolva"]
    assert body["formadepago_id"] == supabase.PAYMENT_METHODS["Efectivo"]
    assert body["telefonodador"] == "+5493415551234"
    assert body["fechacarga"] == "2025-03-15"
    assert body["fechadescarga"] == "2025-03-17"
    assert body["pagopor"] == "Otros"
    assert body["dador_id"] == "dador-1"


@pytest.mark.asyncio
async def test_rejected_listing_raises_sink_error(monkeypatch, settings):
    handler = _router(
        known={RECORD["localidadCarga"], RECORD["localidadDescarga"]},
        listing_status=HTTPStatus.CONFLICT,
    )
    monkeypatch.setattr(supabase.httpx, "AsyncClient", stub_async_client(handler, []))

    with pytest.raises(SinkError) as excinfo:
        await SupabaseSink(settings).create_listings([RECORD])

    assert "409" in excinfo.value.message
    assert "violates foreign key" in excinfo.value.message


@pytest.mark.asyncio
async def test_missing_api_key(monkeypatch, settings):
    monkeypatch.delenv("TEST_SUPABASE_KEY")
    monkeypatch.setattr(supabase.httpx, "AsyncClient", stub_async_client(_router(known=set()), []))

    with pytest.raises(SinkError):
        await SupabaseSink(settings).create_listings([RECORD])


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+54 9 341 555-1234", "+5493415551234"),
        ("5493415551234", "+5493415551234"),
        ("9 (341) 5551234", "+5493415551234"),
        ("341 5551234", "+543415551234"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("15/03/2025", "2025-03-15"),
        ("2025-03-15", "2025-03-15"),
        ("15-03-2025", "2025-03-15"),
        ("mañana", "2025-01-02"),
        ("", "2025-01-02"),
    ],
)
def test_format_date(raw, expected):
    assert format_date(raw, today=date(2025, 1, 2)) == expected
