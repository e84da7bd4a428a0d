"""
Replicate API provider for image generation (FLUX Kontext by default).
Creates a prediction for the model, then polls it until it settles. Returns the output URL.
"""
import time

import httpx
import pybreaker

from photoset.services.circuit_breaker import get_circuit_breaker
from photoset.services.image_generation.base import (
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    sanitize_response_for_log,
)

BREAKER_NAME = "image_provider"


class ReplicateProvider(ImageGenerationProvider):
    """Replicate API provider for image generation."""

    name = "replicate"

    def __init__(self, config: dict, transport: httpx.BaseTransport | None = None, sleep=time.sleep):
        super().__init__(config)
        self.api_token = config.get("api_token")
        self.api_url = config.get("api_url", "https://api.replicate.com/v1").rstrip("/")
        self.model = config.get("model", "black-forest-labs/flux-kontext-pro")
        self.timeout = config.get("timeout", 120.0)
        self.poll_interval = config.get("poll_interval", 2.0)
        self.max_wait = config.get("max_wait_seconds", 300)
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "ReplicateProvider":
        return cls(
            {
                "api_token": settings.replicate_api_token,
                "api_url": settings.replicate_api_url,
                "model": settings.replicate_image_model,
                "timeout": settings.replicate_timeout,
                "poll_interval": settings.replicate_poll_interval,
                "max_wait_seconds": settings.replicate_max_wait_seconds,
            }
        )

    def is_available(self) -> bool:
        """Check if Replicate is configured."""
        return bool(self.api_token)

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        if not self.is_available():
            raise ImageGenerationError("Replicate provider not configured", {"http_status": 401})
        try:
            return get_circuit_breaker(BREAKER_NAME).call(self._generate, request)
        except pybreaker.CircuitBreakerError as e:
            raise ImageGenerationError("Image provider circuit open", {"http_status": 503}) from e

    def _generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        model = request.model or self.model
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
        payload_input = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or "3:4",
            "output_format": "webp",
            "safety_tolerance": 2,
        }
        if request.reference_images:
            payload_input["input_image"] = request.reference_images[0]
        if request.seed is not None:
            payload_input["seed"] = request.seed
        if request.extra_params:
            payload_input.update(request.extra_params)

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            prediction = self._request(
                client, "POST", f"{self.api_url}/models/{model}/predictions",
                headers=headers, json={"input": payload_input},
            )
            prediction = self._wait_for_completion(client, prediction, headers)

        return ImageGenerationResponse(
            image_url=self._extract_output(prediction),
            model=model,
            provider=self.name,
            raw_response_sanitized=sanitize_response_for_log(prediction),
        )

    def _request(self, client: httpx.Client, method: str, url: str, **kwargs) -> dict:
        try:
            response = client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ImageGenerationError(f"Replicate request timed out: {e}", {"timeout": True}) from e
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Replicate request failed: {e}") from e
        if response.status_code >= 400:
            raise ImageGenerationError(
                f"Replicate HTTP {response.status_code}",
                {
                    "http_status": response.status_code,
                    "retry_after": response.headers.get("Retry-After"),
                    "provider_error": response.text[:500],
                },
            )
        return response.json()

    def _wait_for_completion(self, client: httpx.Client, prediction: dict, headers: dict) -> dict:
        """Poll prediction until it succeeds, fails, or max_wait elapses."""
        started = time.monotonic()
        while True:
            status = prediction.get("status")
            if status == "succeeded":
                return prediction
            if status in ("failed", "canceled"):
                raise ImageGenerationError(
                    f"Replicate prediction {status}: {prediction.get('error') or 'Unknown error'}",
                    {"prediction_status": "failed", "provider_error": prediction.get("error")},
                )
            if time.monotonic() - started >= self.max_wait:
                raise ImageGenerationError(
                    f"Replicate prediction timed out after {self.max_wait}s",
                    {"timeout": True},
                )
            self._sleep(self.poll_interval)
            prediction = self._request(client, "GET", prediction["urls"]["get"], headers=headers)

    @staticmethod
    def _extract_output(prediction: dict) -> str:
        output = prediction.get("output")
        if isinstance(output, list) and output:
            return output[0]
        if isinstance(output, str) and output:
            return output
        raise ImageGenerationError(
            f"Unexpected output format: {output!r}",
            {"prediction_status": "succeeded", "provider_error": "empty output"},
        )
