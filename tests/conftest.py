import os

# Service settings are read at import time; point them at test doubles first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OTLP_ENDPOINT", "")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("KAFKA_CONSUMER_ENABLED", "false")
os.environ.setdefault("SEED_CATALOG", "false")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from aiokafka.errors import KafkaConnectionError  # noqa: E402

from shared.event_bus import EventPublisher  # noqa: E402
from shared.events import EventMessage  # noqa: E402
from shared.security import mint_token  # noqa: E402


class FakeProducer:
    """Stands in for AIOKafkaProducer, recording what would have been sent."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        if self.fail:
            raise KafkaConnectionError("broker unavailable")
        self.sent.append(SimpleNamespace(topic=topic, key=key, value=value, headers=headers))

    def events(self, topic: str) -> list[EventMessage]:
        return [
            EventMessage.model_validate_json(msg.value) for msg in self.sent if msg.topic == topic
        ]

    def raw(self, topic: str) -> list[bytes]:
        return [msg.value for msg in self.sent if msg.topic == topic]


@pytest.fixture()
def producer():
    return FakeProducer()


@pytest.fixture()
def publisher(producer):
    return EventPublisher(producer)


@pytest.fixture()
def auth_headers():
    def _headers(*roles: str, subject: str = "alice") -> dict[str, str]:
        token = mint_token(os.environ["JWT_SECRET"], subject, list(roles or ["USERS"]), 300)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def kafka_message():
    def _message(value, topic="order-events", offset=0, key=None):
        if isinstance(value, EventMessage):
            value = value.to_json()
        return SimpleNamespace(
            topic=topic, value=value, key=key, offset=offset, partition=0, headers=[]
        )

    return _message
