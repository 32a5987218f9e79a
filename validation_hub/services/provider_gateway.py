"""
Provider Gateway - Validation Hub
validation_hub/services/provider_gateway.py

The only boundary to remote analytic providers (market sizing, competition,
sentiment, trends, social listening). Every provider is invoked the same way:

    POST {PROVIDER_BASE_URL}/{provider_name}
    {"idea": <idea text>, "tileType": <tile type>, ...params}

Failure classification:
    timeout / transport error / open circuit  -> ProviderUnavailable (retryable)
    HTTP 429 or 5xx                            -> ProviderUnavailable (retryable)
    other HTTP 4xx                             -> ProviderUnavailable (not retryable)
    body with status "unavailable"             -> ProviderUnavailable (retryable)
    non-JSON or non-object body                -> ProviderMalformed

No automatic retries; the caller decides when to try again.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from validation_hub.config import get_provider_name, settings
from validation_hub.core.exceptions import ProviderMalformed, ProviderUnavailable
from validation_hub.models.tile import TileRequest
from validation_hub.services.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    get_all_circuit_states,
    get_circuit_breaker,
)

logger = logging.getLogger(__name__)


def _trips_circuit(exc: BaseException) -> bool:
    return isinstance(exc, ProviderUnavailable) and exc.retryable


class ProviderGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.PROVIDER_BASE_URL).rstrip("/")
        if api_key is None and settings.PROVIDER_API_KEY is not None:
            api_key = settings.PROVIDER_API_KEY.get_secret_value()
        self.api_key = api_key
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.transport = transport
        self.invocations = 0

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def breaker(self, provider_name: str) -> CircuitBreaker:
        return get_circuit_breaker(f"provider:{provider_name}", is_failure=_trips_circuit)

    def circuit_states(self) -> Dict[str, Dict[str, Any]]:
        return get_all_circuit_states()

    async def fetch(self, request: TileRequest) -> Dict[str, Any]:
        """Invoke the provider backing a tile request."""
        body: Dict[str, Any] = {"idea": request.idea_text, "tileType": request.tile_type}
        body.update(request.params)
        return await self.invoke(get_provider_name(request.tile_type), body)

    async def invoke(self, provider_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Invoke a provider and return its JSON object.

        Raises:
            ProviderUnavailable: Network failure, timeout, error status or open circuit.
            ProviderMalformed: Response body is not a JSON object.
        """
        try:
            return await self.breaker(provider_name).call(self._post, provider_name, body)
        except CircuitOpenError as e:
            logger.warning("Provider call short-circuited", extra={"provider": provider_name})
            raise ProviderUnavailable(str(e), provider=provider_name) from e

    async def _post(self, provider_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{provider_name}"
        self.invocations += 1

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(url, json=body, headers=self.headers)
            except httpx.TimeoutException as e:
                logger.error("Provider timed out", extra={"provider": provider_name, "timeout": self.timeout})
                raise ProviderUnavailable(
                    f"{provider_name} timed out after {self.timeout}s", provider=provider_name
                ) from e
            except httpx.HTTPError as e:
                logger.error("Provider request failed", extra={"provider": provider_name, "error": str(e)})
                raise ProviderUnavailable(f"{provider_name} request failed: {e}", provider=provider_name) from e

        logger.debug("Provider responded", extra={"provider": provider_name, "status": response.status_code})

        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderUnavailable(
                f"{provider_name} returned HTTP {response.status_code}",
                provider=provider_name,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise ProviderUnavailable(
                f"{provider_name} rejected the request: HTTP {response.status_code} {response.text[:200]}",
                provider=provider_name,
                status_code=response.status_code,
                retryable=False,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderMalformed(f"{provider_name} returned a non-JSON body", provider=provider_name) from e
        if not isinstance(data, dict):
            raise ProviderMalformed(
                f"{provider_name} returned {type(data).__name__}, expected an object", provider=provider_name
            )
        if str(data.get("status", "")).lower() == "unavailable":
            raise ProviderUnavailable(
                f"{provider_name} reported itself unavailable: {data.get('reason') or data.get('error') or 'no reason'}",
                provider=provider_name,
            )
        return data
