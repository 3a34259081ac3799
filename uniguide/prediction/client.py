"""
Prediction service client
Thin httpx wrapper around the remote ML prediction service
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import PredictionServiceConfig
from ..exceptions import (
    PredictionApiError,
    PredictionResponseError,
    PredictionServiceError,
    PredictionTimeoutError,
    PredictionValidationError,
)
from ..logger import logger
from .schemas import HTTPValidationError


class PredictionServiceClient:
    """
    Client for the prediction microservice

    Every transport or HTTP failure leaves this class as a PredictionServiceError
    subclass, so callers only deal with the application taxonomy.

    Attributes:
        config: Prediction service settings
        base_url: http://{hostname}:{port}{path}
    """

    def __init__(self, config: PredictionServiceConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the client

        Args:
            config: Prediction service settings
            transport: Optional httpx transport (tests pass an httpx.MockTransport)
        """
        self.config = config
        self.base_url = config.base_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout_ms / 1000.0,
            transport=transport,
            headers={'Content-Type': 'application/json'}
        )

    async def __aenter__(self) -> "PredictionServiceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, json: Any = None) -> Any:
        """
        Send a request and return the decoded JSON body

        Args:
            method: HTTP method
            path: Path relative to the base URL (e.g. /predict/l1/batch)
            json: JSON-serializable request body

        Returns:
            Any: Decoded response body

        Raises:
            PredictionValidationError: On HTTP 422
            PredictionApiError: On any other HTTP error status or transport failure
            PredictionTimeoutError: When the configured timeout elapses
            PredictionResponseError: When the body is not valid JSON
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.warning(f"Prediction service timed out on {method} {path}: {str(e)}")
            raise PredictionTimeoutError(
                f"Prediction service timed out after {self.config.timeout_ms}ms on {path}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Prediction service unreachable on {method} {path}: {str(e)}")
            raise PredictionApiError(None, str(e)) from e

        if response.status_code == 422:
            raise self._validation_error(response)
        if response.is_error:
            raise PredictionApiError(response.status_code, response.text or response.reason_phrase)

        try:
            return response.json()
        except ValueError as e:
            raise PredictionResponseError(f"Prediction service returned invalid JSON on {path}") from e

    async def health_check(self) -> bool:
        """
        Check that the prediction service answers on /health

        Returns:
            bool: True if the service responded successfully
        """
        try:
            await self.request("GET", "/health")
            return True
        except PredictionServiceError as e:
            logger.warning(f"Prediction service health check failed: {str(e)}")
            return False

    @staticmethod
    def _validation_error(response: httpx.Response) -> PredictionServiceError:
        try:
            body = HTTPValidationError.model_validate(response.json())
        except (ValueError, ValidationError):
            return PredictionApiError(422, response.text)
        return PredictionValidationError([issue.model_dump() for issue in body.detail])
