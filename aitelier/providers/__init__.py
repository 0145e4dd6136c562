"""Training and completion providers."""

from aitelier.providers.base import CompletionProvider, FineTuneProvider
from aitelier.providers.schemas import ProviderError
from aitelier.providers.together import TogetherProvider

__all__ = ["CompletionProvider", "FineTuneProvider", "ProviderError", "TogetherProvider", "get_provider"]


def get_provider(project) -> FineTuneProvider:
    """Build the provider configured on a project (its own key, else the global one)."""
    api_key = (project.provider_config or {}).get("api_key")
    if project.provider != TogetherProvider.name:
        raise ProviderError(project.provider, "Unsupported provider")
    return TogetherProvider(api_key=api_key)
