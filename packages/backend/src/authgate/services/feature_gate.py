"""Feature gate client — which sign-in methods are switched on.

Learn: The remote feature service answers GET /check/<feature> with
{"enabled": bool, "reason": ...}. Anything other than a clean 2xx with
a boolean `enabled` means "disabled": timeouts, connection errors,
404 for unknown features, garbage bodies. Gating sign-in methods must
never fail open, and errors never escape this class.
"""

from typing import Optional

import httpx
import structlog

from authgate.config import Settings

logger = structlog.get_logger()

# Sign-in method → feature flag name, in advertised order
AUTH_FEATURES = {
    "google": "google-auth",
    "github": "github-auth",
    "email": "email-auth",
}


class FeatureGateClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeatureGateClient":
        return cls(settings.feature_service_url, timeout=settings.feature_timeout_seconds)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        )

    async def is_enabled(
        self,
        feature_name: str,
        user_id: Optional[str] = None,
        role_id: Optional[str] = None,
    ) -> bool:
        params = {}
        if user_id:
            params["userId"] = user_id
        if role_id:
            params["roleId"] = role_id

        try:
            async with self._client() as c:
                r = await c.get(f"/check/{feature_name}", params=params)
            if r.status_code == 404:
                logger.error("feature_gate.not_found", feature=feature_name)
                return False
            r.raise_for_status()
            enabled = r.json().get("enabled")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error("feature_gate.unavailable", feature=feature_name, error=str(e))
            return False

        return enabled is True

    async def available_auths(self) -> list[str]:
        """Sign-in methods currently advertised to callers."""
        return [
            method
            for method, feature in AUTH_FEATURES.items()
            if await self.is_enabled(feature)
        ]
