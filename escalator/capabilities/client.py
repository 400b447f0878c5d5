"""HTTP capability client (transport only)."""

import logging
from typing import Optional

import httpx

from escalator.capabilities.base import (
    CapabilityError,
    CapabilityTimeout,
    CapabilityUnavailableError,
)
from escalator.schemas import CapabilityResponse, StageContext, StageSpec

logger = logging.getLogger(__name__)

UNAVAILABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class HttpCapability:
    """Async client for a capability served over HTTP.

    Responsibilities:
    - Serialising the stage and its context as a JSON POST
    - Normalising transport failures into the capability error kinds

    Not responsible for:
    - Retries (the resilience manager owns the single retry)
    - Interpreting the analysis it gets back
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
        return self._client

    async def invoke(
        self,
        stage: StageSpec,
        context: StageContext,
        timeout: float,
    ) -> CapabilityResponse:
        """POST the stage to the capability endpoint.

        Args:
            stage: Stage being executed
            context: Task, profile and prior artifacts
            timeout: Seconds the request may take

        Returns:
            Parsed CapabilityResponse

        Raises:
            CapabilityTimeout: The request timed out
            CapabilityUnavailableError: Connection failure, 429 or 5xx gateway status
            CapabilityError: Any other non-200 status or an unparseable body
        """
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        payload = {
            "stage": stage.model_dump(mode="json", exclude={"fallback"}),
            "context": context.model_dump(mode="json"),
        }

        client = self._get_client()
        try:
            response = await client.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise CapabilityTimeout(
                f"{stage.capability} at {self.endpoint} timed out after {timeout}s"
            ) from e
        except httpx.RequestError as e:
            raise CapabilityUnavailableError(f"Request to {self.endpoint} failed: {e}") from e

        if response.status_code == 200:
            try:
                return CapabilityResponse.model_validate(response.json())
            except ValueError as e:
                raise CapabilityError(
                    f"Malformed response from {stage.capability}: {e}"
                ) from e

        if response.status_code in UNAVAILABLE_STATUS_CODES:
            logger.debug(f"{stage.capability} returned HTTP {response.status_code}")
            raise CapabilityUnavailableError(
                f"HTTP {response.status_code}: {response.text}"
            )

        raise CapabilityError(f"HTTP {response.status_code}: {response.text}")

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
