"""
Emergency collaborator clients.

The escalation coordinator is the only caller: at most one ``trigger_alert``
per open escalation, retries aside.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import DispatchError
from .logging_config import get_logger
from .schemas import DispatchResult, GeoPoint, SeverityLevel

logger = get_logger(__name__)


class EmergencyDispatcher(ABC):
    """Abstract emergency-response collaborator."""

    @abstractmethod
    async def trigger_alert(
        self,
        tourist_id: str,
        alert_type: str,
        severity: SeverityLevel,
        location: Optional[GeoPoint],
        description: str,
    ) -> DispatchResult:
        """Raise an alert; return whether it was acknowledged."""
        pass

    async def close(self) -> None:
        """Release any transport resources."""
        return None


class HttpEmergencyDispatcher(EmergencyDispatcher):
    """
    Posts alerts to an emergency-response HTTP API.

    Any 200/201 response carrying an ``alert_id`` counts as acknowledged.
    Other statuses return an unsuccessful result; transport failures raise
    DispatchError.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        """
        Initialize the dispatcher.

        Args:
            base_url: Base URL of the emergency API
            api_key: Optional bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {'Content-Type': 'application/json'}
            if self.api_key:
                headers['Authorization'] = f'Bearer {self.api_key}'
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def trigger_alert(
        self,
        tourist_id: str,
        alert_type: str,
        severity: SeverityLevel,
        location: Optional[GeoPoint],
        description: str,
    ) -> DispatchResult:
        session = await self._ensure_session()
        alert: Dict[str, Any] = {
            'tourist_id': tourist_id,
            'type': alert_type,
            'severity': SeverityLevel(severity).value,
            'location': location.model_dump() if location else None,
            'description': description,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        url = f"{self.base_url}/api/v1/emergency/alerts"

        try:
            async with session.post(url, json=alert) as response:
                if response.status in (200, 201):
                    body = await response.json()
                    alert_id = body.get('alert_id') if isinstance(body, dict) else None
                    return DispatchResult(success=alert_id is not None, alert_id=alert_id)
                error_text = await response.text()
                logger.warning(
                    "emergency_alert_rejected",
                    tourist_id=tourist_id,
                    status=response.status,
                    body=error_text[:200],
                )
                return DispatchResult(success=False)
        except aiohttp.ClientError as e:
            raise DispatchError(f"Failed to reach emergency service: {e}") from e


class LoggingEmergencyDispatcher(EmergencyDispatcher):
    """Logs alerts and acknowledges them. For dry runs and replays."""

    def __init__(self):
        self.alerts = []

    async def trigger_alert(
        self,
        tourist_id: str,
        alert_type: str,
        severity: SeverityLevel,
        location: Optional[GeoPoint],
        description: str,
    ) -> DispatchResult:
        alert_id = f"dry-run-{tourist_id}-{len(self.alerts) + 1}"
        self.alerts.append(alert_id)
        logger.warning(
            "emergency_alert_logged",
            tourist_id=tourist_id,
            alert_id=alert_id,
            alert_type=alert_type,
            severity=SeverityLevel(severity).value,
            description=description,
        )
        return DispatchResult(success=True, alert_id=alert_id)
