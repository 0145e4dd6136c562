# @TASK P3-T3.1 - Training provider request/response schemas
"""Pydantic v2 schemas shared by training providers.

- Message: Chat message with role and content
- ModelInfo: Chat model offered by the provider
- FineTuneConfig: Hyper-parameters for a fine-tune job
- JobStatus: Provider job state mapped onto TrainingRun statuses
- ProviderError: Custom exception for provider failures
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from aitelier.constants import TrainingStatus


class Message(BaseModel):
    """A single chat message.

    Attributes:
        role: The role of the message sender (system, user, or assistant).
        content: The text content of the message.
    """

    role: Literal["system", "user", "assistant"]
    content: str


class ModelInfo(BaseModel):
    """A chat/instruct model that can serve as a project's base model.

    Attributes:
        id: Model identifier used in API calls.
        display_name: Human-readable name.
        context_length: Context window in tokens, when the provider reports it.
        recommended: Whether the model is on the curated shortlist.
    """

    id: str
    display_name: str
    context_length: int | None = None
    recommended: bool = False


class FineTuneConfig(BaseModel):
    """Parameters for creating a fine-tune job.

    Attributes:
        base_model: Model to fine-tune.
        training_file: Provider file id of the uploaded training JSONL.
        validation_file: Optional provider file id of the validation JSONL.
        epochs / batch_size / learning_rate: Optimiser settings.
        lora_r / lora_alpha / lora_dropout: LoRA adapter settings.
    """

    base_model: str
    training_file: str
    validation_file: str | None = None
    epochs: int = Field(3, ge=1)
    batch_size: int = Field(4, ge=1)
    learning_rate: float = Field(1e-5, gt=0)
    lora_r: int = Field(16, ge=1)
    lora_alpha: int = Field(32, ge=1)
    lora_dropout: float | None = Field(0.05, ge=0, lt=1)

    @classmethod
    def from_project_config(
        cls, base_model: str, training_file: str, training_config: dict, validation_file: str | None = None
    ) -> FineTuneConfig:
        known = {k: v for k, v in training_config.items() if k in cls.model_fields}
        return cls(base_model=base_model, training_file=training_file, validation_file=validation_file, **known)


class JobStatus(BaseModel):
    """Fine-tune job state as reported by the provider.

    Attributes:
        id: Provider job id.
        status: Provider status translated to a TrainingRun status.
        raw_status: The status string exactly as the provider sent it.
        model_id: Fine-tuned model identifier once available.
        error: Provider-side error message, if any.
    """

    id: str
    status: TrainingStatus
    raw_status: str
    model_id: str | None = None
    error: str | None = None


class ProviderError(Exception):
    """Custom exception raised when a provider request fails.

    Attributes:
        provider: The provider that raised the error.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}" + (f" (HTTP {status_code})" if status_code else ""))

    @property
    def retryable(self) -> bool:
        """Rate limits, server errors and transport failures (no status) are worth retrying."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500
