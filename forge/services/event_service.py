import json
import logging
import redis

logger = logging.getLogger(__name__)

class EventService:
    """Publishes build lifecycle events on `build:<app_id>` for outside observers."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def publish(self, app_id: str, payload: dict):
        try:
            self.client.publish(f"build:{app_id}", json.dumps(payload, default=str))
        except redis.exceptions.RedisError as e:
            logger.warning("Could not publish %s for app %s: %s", payload.get("type"), app_id, e)
