"""Testes de integração para configuração do Celery e relay do outbox."""

from uuid import uuid4

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.shipments.constants import ShipmentStatus
from modules.shipments.events import ShipmentStatusChanged

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _celery_eager(settings):
    """Executa tasks de forma síncrona no processo de teste."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


def _outbox(event_type="ShipmentStatusChanged", **overrides):
    aggregate_id = uuid4()
    payload = ShipmentStatusChanged(
        aggregate_id=aggregate_id,
        order_id="ORD-5503",
        old_status=ShipmentStatus.PICKUP_PENDING,
        new_status=ShipmentStatus.IN_TRANSIT,
    ).to_payload()
    data = {
        "event_type": event_type,
        "payload": payload,
        "aggregate_id": str(aggregate_id),
        "topic": "shipments",
    }
    data.update(overrides)
    return OutboxEvent.objects.create(**data)


class TestCeleryConfig:
    """Verifica que o Celery carrega corretamente via Django."""

    def test_celery_app_is_importable(self):
        from config.celery import app

        assert app.main == "logistics"

    def test_celery_app_exported_from_init(self):
        from config import celery_app

        assert celery_app.main == "logistics"

    def test_celery_broker_url_configured(self, settings):
        assert settings.CELERY_BROKER_URL
        assert settings.CELERY_RESULT_BACKEND

    def test_celery_serializer_is_json(self, settings):
        assert settings.CELERY_TASK_SERIALIZER == "json"
        assert settings.CELERY_RESULT_SERIALIZER == "json"
        assert settings.CELERY_ACCEPT_CONTENT == ["json"]

    def test_celery_timezone_matches_django(self, settings):
        assert settings.CELERY_TIMEZONE == settings.TIME_ZONE

    def test_outbox_relay_is_scheduled(self, settings):
        schedule = settings.CELERY_BEAT_SCHEDULE["relay-outbox"]
        assert schedule["task"] == "core.relay_outbox"


class TestDebugTask:
    """Verifica execução da task de diagnóstico em modo eager."""

    def test_debug_task_returns_success(self):
        from modules.core.tasks import debug_task

        result = debug_task.delay()

        assert result.successful()
        assert result.result["status"] == "ok"

    def test_debug_task_direct_call(self):
        from modules.core.tasks import debug_task

        output = debug_task()

        assert output == {"status": "ok", "message": "Celery is working"}


class TestRelayOutbox:
    """Verifica a publicação de eventos pendentes do outbox."""

    def test_pending_events_are_published(self):
        from modules.core.tasks import relay_outbox

        outbox = _outbox()

        result = relay_outbox.delay()

        assert result.result == {"published": 1, "failed": 0}
        outbox.refresh_from_db()
        assert outbox.status == EventStatus.PUBLISHED
        assert outbox.processed_at is not None

    def test_unknown_event_type_is_marked_failed(self):
        from modules.core.tasks import relay_outbox

        outbox = _outbox(event_type="ParcelTeleported")

        output = relay_outbox()

        assert output == {"published": 0, "failed": 1}
        outbox.refresh_from_db()
        assert outbox.status == EventStatus.FAILED
        assert outbox.retry_count == 1
        assert outbox.error_message

    def test_failure_does_not_block_the_batch(self):
        from modules.core.tasks import relay_outbox

        broken = _outbox(event_type="ParcelTeleported")
        healthy = _outbox()

        assert relay_outbox() == {"published": 1, "failed": 1}
        healthy.refresh_from_db()
        broken.refresh_from_db()
        assert healthy.status == EventStatus.PUBLISHED
        assert broken.status == EventStatus.FAILED

    def test_exhausted_events_are_skipped(self):
        from modules.core.tasks import OUTBOX_MAX_RETRIES, relay_outbox

        _outbox(
            event_type="ParcelTeleported",
            status=EventStatus.FAILED,
            retry_count=OUTBOX_MAX_RETRIES,
        )

        assert relay_outbox() == {"published": 0, "failed": 0}

    def test_published_events_are_not_relayed_twice(self):
        from modules.core.tasks import relay_outbox

        _outbox()
        relay_outbox()

        assert relay_outbox() == {"published": 0, "failed": 0}
