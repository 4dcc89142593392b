from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(slots=True)
class Event:
    """Kafka 메시지의 메타데이터와 페이로드를 표현하는 이벤트 봉투.

    payload 는 JSON 직렬화 가능한 dict 이고, 실제 Kafka I/O 레이어에서 인코딩한다.
    """

    id: str
    payload: Any


@dataclass(frozen=True, slots=True)
class Topic:
    base: str


def new_json_event(
    payload: Mapping[str, Any],
    *,
    event_id: str | None = None,
) -> Event:
    """payload 를 Event 봉투로 감싼다. id 가 비어 있으면 나노초 타임스탬프를 사용한다."""

    if not event_id:
        event_id = str(time.time_ns())
    return Event(id=event_id, payload=dict(payload))
