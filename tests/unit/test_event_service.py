import json
import logging
from unittest.mock import MagicMock
import redis
from forge.models.enums import BuildEvent
from forge.services.event_service import EventService

def test_publish_on_app_channel():
    client = MagicMock()
    EventService(client).publish("app-1", {"type": BuildEvent.STARTED, "job_id": "job-1"})

    channel, message = client.publish.call_args[0]
    assert channel == "build:app-1"
    assert json.loads(message) == {"type": "BUILD_STARTED", "job_id": "job-1"}

def test_redis_outage_does_not_raise(caplog):
    client = MagicMock()
    client.publish.side_effect = redis.exceptions.ConnectionError("refused")

    with caplog.at_level(logging.WARNING, logger="forge.services.event_service"):
        EventService(client).publish("app-1", {"type": BuildEvent.FAILED})

    assert "Could not publish" in caplog.text
