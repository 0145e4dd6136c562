# @TASK P3-T3.2 - Together.ai provider
# @TEST tests/test_together_provider.py
"""Together.ai provider over its REST API (``https://api.together.xyz/v1``).

Covers the whole fine-tuning loop used by aitelier: listing chat models,
uploading JSONL files, creating / polling / cancelling fine-tune jobs and
chat completions for evaluations.

Transient failures (HTTP 429, 5xx, transport errors) are retried with
exponential backoff; everything else raises :class:`ProviderError`
immediately.

Usage::

    async with TogetherProvider(api_key="...") as provider:
        file_id = await provider.upload_file(jsonl)
        job_id = await provider.create_fine_tune_job(FineTuneConfig(...))
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from aitelier.config import get_settings
from aitelier.constants import TrainingStatus
from aitelier.providers.base import FineTuneProvider
from aitelier.providers.schemas import FineTuneConfig, JobStatus, Message, ModelInfo, ProviderError

logger = logging.getLogger(__name__)

_PROVIDER_NAME = "together"

RECOMMENDED_MODELS: tuple[str, ...] = (
    "meta-llama/Llama-3.3-70B-Instruct-Turbo",
    "meta-llama/Llama-3.2-11B-Vision-Instruct-Turbo",
    "mistralai/Mistral-7B-Instruct-v0.3",
)

# Together job states -> TrainingRun statuses. Unknown states count as queued.
_STATUS_MAP: dict[str, TrainingStatus] = {
    "pending": TrainingStatus.QUEUED,
    "queued": TrainingStatus.QUEUED,
    "running": TrainingStatus.TRAINING,
    "compressing": TrainingStatus.TRAINING,
    "uploading": TrainingStatus.TRAINING,
    "completed": TrainingStatus.COMPLETED,
    "succeeded": TrainingStatus.COMPLETED,
    "failed": TrainingStatus.FAILED,
    "error": TrainingStatus.FAILED,
    "cancel_requested": TrainingStatus.CANCELLED,
    "cancelled": TrainingStatus.CANCELLED,
}


def map_job_status(raw_status: str) -> TrainingStatus:
    return _STATUS_MAP.get(raw_status.lower(), TrainingStatus.QUEUED)


def _is_chat_model(model_id: str) -> bool:
    return "Instruct" in model_id or "chat" in model_id or "Chat" in model_id


class TogetherProvider(FineTuneProvider):
    """Fine-tune and completion provider backed by Together.ai.

    Args:
        api_key: Together API key. Falls back to ``TOGETHER_API_KEY`` from
            the settings when *None*.
        base_url: API root, ``TOGETHER_API_BASE`` by default.
        max_retries: Retries for transient failures (0 disables retrying).
        retry_delay: Seconds before the first retry; doubled every attempt.

    Raises:
        ProviderError: If no API key is found.
    """

    name = _PROVIDER_NAME

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        settings = get_settings()
        resolved_key = api_key or settings.TOGETHER_API_KEY
        if not resolved_key:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message="API key is required. Configure the project's provider key or set TOGETHER_API_KEY.",
            )
        self._base_url = (base_url or settings.TOGETHER_API_BASE).rstrip("/")
        self.max_retries = settings.PROVIDER_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.PROVIDER_RETRY_DELAY if retry_delay is None else retry_delay
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.PROVIDER_TIMEOUT,
            headers={"Authorization": f"Bearer {resolved_key}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures with exponential backoff."""
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, **kwargs)
                if response.status_code >= 400:
                    raise ProviderError(_PROVIDER_NAME, response.text or response.reason_phrase, response.status_code)
                return response
            except httpx.HTTPError as exc:
                error = ProviderError(_PROVIDER_NAME, f"{method} {path} failed: {exc}")
            except ProviderError as exc:
                error = exc

            if not error.retryable or attempt >= self.max_retries:
                raise error

            delay = self.retry_delay * (2**attempt)
            logger.warning(
                "Together %s %s failed (%s), retry %d/%d in %.1fs",
                method,
                path,
                error.message,
                attempt + 1,
                self.max_retries,
                delay,
            )
            attempt += 1
            await asyncio.sleep(delay)

    @staticmethod
    def _decode(response: httpx.Response, what: str, *required: str, container: type | tuple = dict) -> Any:
        """Parse a JSON body, raising :class:`ProviderError` when it is not the expected shape."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                _PROVIDER_NAME, f"malformed {what} response: body is not JSON", response.status_code
            ) from exc
        if not isinstance(payload, container):
            raise ProviderError(
                _PROVIDER_NAME,
                f"malformed {what} response: unexpected {type(payload).__name__} body",
                response.status_code,
            )
        missing = [key for key in required if key not in payload]
        if missing:
            raise ProviderError(
                _PROVIDER_NAME, f"malformed {what} response: missing {', '.join(missing)}", response.status_code
            )
        return payload

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def validate_api_key(self) -> bool:
        try:
            await self._request("GET", "/models")
        except ProviderError as exc:
            logger.info("Together API key rejected: %s", exc)
            return False
        return True

    async def list_models(self) -> list[ModelInfo]:
        """Chat/instruct models, recommended ones first, then by display name."""
        response = await self._request("GET", "/models")
        payload = self._decode(response, "model list", container=(dict, list))
        if isinstance(payload, dict):
            payload = payload.get("data", [])

        models = [
            ModelInfo(
                id=m["id"],
                display_name=m.get("display_name") or m["id"].split("/")[-1],
                context_length=m.get("context_length"),
                recommended=m["id"] in RECOMMENDED_MODELS,
            )
            for m in payload
            if _is_chat_model(m.get("id", ""))
        ]
        return sorted(models, key=lambda m: (not m.recommended, m.display_name))

    # ------------------------------------------------------------------
    # Files & fine-tune jobs
    # ------------------------------------------------------------------

    async def upload_file(self, content: str, filename: str = "training.jsonl") -> str:
        response = await self._request(
            "POST",
            "/files/upload",
            files={"file": (filename, content.encode("utf-8"), "application/jsonl")},
            data={"purpose": "fine-tune"},
        )
        file_id = self._decode(response, "file upload", "id")["id"]
        logger.info("Uploaded %s to Together (file_id=%s, %d bytes)", filename, file_id, len(content))
        return file_id

    async def create_fine_tune_job(self, config: FineTuneConfig) -> str:
        body: dict[str, Any] = {
            "model": config.base_model,
            "training_file": config.training_file,
            "n_epochs": config.epochs,
            "batch_size": config.batch_size,
            "learning_rate": config.learning_rate,
            "lora_r": config.lora_r,
            "lora_alpha": config.lora_alpha,
        }
        if config.validation_file:
            body["validation_file"] = config.validation_file
        if config.lora_dropout is not None:
            body["lora_dropout"] = config.lora_dropout

        response = await self._request("POST", "/fine-tunes", json=body)
        job_id = self._decode(response, "fine-tune job", "id")["id"]
        logger.info("Created Together fine-tune job %s on %s", job_id, config.base_model)
        return job_id

    async def get_job_status(self, job_id: str) -> JobStatus:
        response = await self._request("GET", f"/fine-tunes/{job_id}")
        data = self._decode(response, "job status")
        raw_status = str(data.get("status", "pending"))
        return JobStatus(
            id=data.get("id", job_id),
            status=map_job_status(raw_status),
            raw_status=raw_status,
            model_id=data.get("fine_tuned_model") or data.get("output_name"),
            error=data.get("error"),
        )

    async def cancel_job(self, job_id: str) -> None:
        await self._request("POST", f"/fine-tunes/{job_id}/cancel")
        logger.info("Cancelled Together fine-tune job %s", job_id)

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    async def chat(
        self,
        model: str,
        messages: list[Message],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        settings = get_settings()
        response = await self._request(
            "POST",
            "/chat/completions",
            json={
                "model": model,
                "messages": [m.model_dump() for m in messages],
                "max_tokens": max_tokens or settings.EVAL_MAX_TOKENS,
                "temperature": settings.EVAL_TEMPERATURE if temperature is None else temperature,
            },
        )
        choices = self._decode(response, "chat completion").get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""
