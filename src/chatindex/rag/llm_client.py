"""LiteLLM embedding client with retry and API key validation.

All remote embedding calls route through this module. LiteLLM's built-in
retry is used (num_retries=3, exponential backoff). API key presence is
validated before the first request.
"""

from __future__ import annotations

import os

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string ('openai' if absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # Unknown or keyless provider (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed_batch(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Call litellm.embedding() for a batch. Returns vectors in input order.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        texts: Texts to embed (non-empty list).
        num_retries: Number of retries on transient errors.

    Returns:
        One embedding (list of floats) per input text.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
    )
    return [list(item["embedding"]) for item in response.data]
