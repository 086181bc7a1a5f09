import httpx

from rawhost.logging_config import get_logger
from rawhost.models import RotatingPassword

logger = get_logger(__name__)


class WebhookNotifier:
    """Best-effort delivery of password rotations to an external webhook."""

    def __init__(self, url: str | None, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def notify_password(self, password: RotatingPassword) -> bool:
        if not self.url:
            return False

        payload = {
            "event": "password_rotated",
            "password": password.value,
            "expires_at": password.expires_at,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery failed: %s", exc)
            return False
        return True
