"""Tasks assíncronas do módulo core."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

OUTBOX_BATCH_SIZE = 100
OUTBOX_MAX_RETRIES = 5


@shared_task(name="core.debug_task")
def debug_task():
    """Task de diagnóstico para validar que o Celery está operacional."""
    logger.info("debug_task.executed", status="ok")
    return {"status": "ok", "message": "Celery is working"}


@shared_task(name="core.relay_outbox")
def relay_outbox(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Publica eventos pendentes do outbox no barramento em processo.

    Eventos ``FAILED`` são reprocessados até ``OUTBOX_MAX_RETRIES``
    tentativas.  Cada evento é marcado individualmente, então uma falha
    não bloqueia o restante do lote.
    """
    published = failed = 0

    with transaction.atomic():
        batch = list(
            OutboxEvent.objects.select_for_update(skip_locked=True).relayable(
                OUTBOX_MAX_RETRIES
            )[:batch_size]
        )

        for outbox in batch:
            log = logger.bind(
                outbox_id=str(outbox.id),
                event_type=outbox.event_type,
                aggregate_id=outbox.aggregate_id,
            )
            try:
                event_class = DomainEvent.resolve(outbox.event_type)
                event_bus.publish(event_class.from_payload(outbox.payload))
            except Exception as exc:
                outbox.mark_as_failed(str(exc))
                failed += 1
                log.warning("outbox.relay_failed", error=str(exc))
                continue
            outbox.mark_as_published()
            published += 1
            log.info("outbox.relayed")

    return {"published": published, "failed": failed}
