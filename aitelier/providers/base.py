# @TASK P3-T3.1 - Abstract provider interfaces
"""Abstract base classes for completion and fine-tuning providers.

The evaluation engine only needs :class:`CompletionProvider`; training
runs need the full :class:`FineTuneProvider`.

Usage:
    class TogetherProvider(FineTuneProvider):
        async def chat(self, model, messages, **kwargs) -> str:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from aitelier.providers.schemas import FineTuneConfig, JobStatus, Message, ModelInfo
from aitelier.services.export_service import build_messages


class CompletionProvider(ABC):
    """Anything that can turn a prompt into a completion."""

    name: str = "provider"

    @abstractmethod
    async def chat(self, model: str, messages: list[Message], **kwargs: Any) -> str:
        """Send a chat request and return the assistant's text.

        Raises:
            ProviderError: If the provider request fails.
        """
        ...

    async def generate(self, model: str, system_prompt: str | None, user_input: str, **kwargs: Any) -> str:
        """Complete ``user_input`` with ``model`` under an optional shared system instruction."""
        messages = [Message(**m) for m in build_messages(user_input, system_prompt)]
        return await self.chat(model, messages, **kwargs)

    async def aclose(self) -> None:
        """Release network resources. No-op for providers that hold none."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class FineTuneProvider(CompletionProvider):
    """A hosted provider that stores training files and runs fine-tune jobs."""

    @abstractmethod
    async def validate_api_key(self) -> bool:
        ...

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        ...

    @abstractmethod
    async def upload_file(self, content: str, filename: str = "training.jsonl") -> str:
        """Upload a JSONL training file and return the provider file id."""
        ...

    @abstractmethod
    async def create_fine_tune_job(self, config: FineTuneConfig) -> str:
        """Start a fine-tune job and return the provider job id."""
        ...

    @abstractmethod
    async def get_job_status(self, job_id: str) -> JobStatus:
        ...

    @abstractmethod
    async def cancel_job(self, job_id: str) -> None:
        ...
