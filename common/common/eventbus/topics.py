from __future__ import annotations

from .core import Topic


TOPIC_PAYMENT = Topic("storage-credits.payment")
TOPIC_APPROVAL = Topic("storage-credits.approval")
