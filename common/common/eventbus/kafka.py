from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Protocol

from confluent_kafka import Producer

from .config import get_brokers, get_message_max_bytes
from .core import Event, Topic

logger = logging.getLogger(__name__)


class EventPublisherInterface(Protocol):
    def publish(self, topic: Topic, event: Event) -> None:  # pragma: no cover - Protocol
        ...


class KafkaEventBus:
    """Kafka 기반 이벤트 발행기.

    이 서비스는 알림(결제 완료, 승인 생성 등)을 발행만 하고 소비는 외부 알림 서비스가 담당한다.
    """

    def __init__(self, brokers: str, *, message_max_bytes: int | None = None) -> None:
        producer_config: dict[str, object] = {"bootstrap.servers": brokers}
        if message_max_bytes is not None:
            producer_config["message.max.bytes"] = message_max_bytes
        self._producer = Producer(producer_config)

    @classmethod
    def from_env(cls) -> "KafkaEventBus":
        return cls(get_brokers(), message_max_bytes=get_message_max_bytes())

    def close(self) -> None:
        self._producer.flush()

    def publish(self, topic: Topic, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False, default=str).encode(
            "utf-8"
        )

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic.base,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)


class NotificationPublisher:
    """알림 이벤트 발행을 감싸는 best-effort 발행기.

    알림은 부가 경로이므로 발행 실패는 로그만 남기고 호출자에게 전파하지 않는다.
    bus 가 None 이면 (예: Kafka 미설정 환경) 아무것도 하지 않는다.
    """

    def __init__(self, bus: EventPublisherInterface | None) -> None:
        self._bus = bus

    def publish(self, topic: Topic, event: Event) -> bool:
        if self._bus is None:
            logger.debug("event bus disabled, dropping event id=%s", event.id)
            return False
        try:
            self._bus.publish(topic, event)
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to publish notification event id=%s topic=%s",
                event.id,
                topic.base,
            )
            return False
        return True
