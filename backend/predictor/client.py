"""
HTTP client for the external prediction model.
Calls go through the provider gateway under their own breaker; there is no
rate-limit bucket for the model service.
"""
from __future__ import annotations

from typing import Optional

from ingest.gateway import GatewayResult, ProviderGateway
from shared.config import Settings, get_settings
from shared.models.domain import PredictionRequest, PredictionResponse
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

BREAKER_NAME = "prediction_model"


class PredictionModelClient:
    def __init__(
        self,
        gateway: ProviderGateway,
        settings: Optional[Settings] = None,
        http_client: Optional[ProviderHTTPClient] = None,
    ) -> None:
        settings = settings or get_settings()
        self._gateway = gateway
        self._http = http_client or ProviderHTTPClient(
            provider_name=BREAKER_NAME,
            base_url=settings.prediction_base_url,
            timeout_s=settings.prediction_timeout_s,
            max_retries=1,
        )

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def predict(self, request: PredictionRequest) -> GatewayResult[Optional[PredictionResponse]]:
        return await self._gateway.call(
            lambda: self._post(request),
            fallback=lambda: None,
            operation="predict",
            breaker_name=BREAKER_NAME,
        )

    async def _post(self, request: PredictionRequest) -> PredictionResponse:
        data = await self._http.post_json("/predict", request.model_dump(mode="json"))
        return PredictionResponse.model_validate(data)
