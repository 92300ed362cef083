from datetime import datetime, timezone
from http import HTTPStatus
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import freightflow.main as app_main
from freightflow.api import messages as messages_api
from freightflow.core.config import ProcessingSettings
from freightflow.main import app
from freightflow.pipeline.processor import MessageProcessor

TEXT = "Cargo 30 tn de maíz de Pergamino a Rosario, pago transferencia"
LISTING = (
    '[{"localidadCarga": "Pergamino, Buenos Aires, Argentina", '
    '"localidadDescarga": "Rosario, Santa Fe, Argentina"}]'
)


class _Executor:
    async def process(self, system_prompt: str, user_content: str) -> str:
        return LISTING


class _Sink:
    async def create_listings(self, records):
        return ["carga-9"]


@pytest.fixture
def client(monkeypatch, db, silence_events):
    async def no_sleep(_seconds: float) -> None:
        return None

    processor = MessageProcessor(
        _Executor(), _Sink(), settings=ProcessingSettings(), sleep=no_sleep
    )
    services = SimpleNamespace(processor=processor)
    monkeypatch.setattr(app_main, "init_db", lambda: None)
    monkeypatch.setattr(app_main, "seed_providers", lambda providers: None)
    monkeypatch.setattr(app_main, "get_services", lambda: services)
    monkeypatch.setattr(messages_api, "get_services", lambda: services)

    with TestClient(app) as test_client:
        yield test_client


def _ingest(client, message_id: str = "wamid-1", text: str = TEXT):
    return client.post(
        "/messages",
        json={
            "message_id": message_id,
            "chat_id": "120363@g.us",
            "sender_id": "5491155",
            "real_identity": "+5491155",
            "text": text,
            "timestamp": datetime(2025, 3, 10, 12, tzinfo=timezone.utc).isoformat(),
        },
    )


def test_ingest_then_process_pending(client):
    assert _ingest(client).json() == {"outcome": "stored"}
    assert _ingest(client, "wamid-2").json() == {"outcome": "duplicate"}
    assert _ingest(client, "wamid-3", text="hola").json() == {"outcome": "ignored"}

    response = client.post("/messages/process")

    assert response.status_code == HTTPStatus.OK
    body = response.json()
    assert body["remaining"] == 0
    assert body["results"][0]["outcome"] == "created"
    assert body["results"][0]["record_ids"] == ["carga-9"]
    assert "x-request-id" in response.headers

    stats = client.get("/messages/stats").json()
    assert stats["success_count"] == 1
    assert stats["total_records"] == 1
    assert stats["messages_processed"] == 1


def test_process_single_and_reset(client):
    _ingest(client)

    missing = client.post("/messages/nope/process", params={"chat_id": "120363@g.us"})
    assert missing.status_code == HTTPStatus.NOT_FOUND

    result = client.post("/messages/wamid-1/process", params={"chat_id": "120363@g.us"}).json()
    assert result["result"]["status"] == "success"

    reset = client.post("/messages/wamid-1/reset", params={"chat_id": "120363@g.us"})
    assert reset.status_code == HTTPStatus.OK
    assert client.get("/messages/results/today").json()["results"][0]["message_id"] == "wamid-1"
    assert client.get("/messages/results/errors").json() == {"results": []}
