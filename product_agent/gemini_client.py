from __future__ import annotations

from typing import Dict, Optional

import google.generativeai as genai

from .config import Settings


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching and JSON output mode."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK global API key and caches a model.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key is missing.
        If Removed: The extractor has no hosted model and always uses the fallback.
        Testing Notes: Missing key raises ValueError before any network call.
        """
        # Configure API key and seed the default model.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._timeout_sec = settings.extractor_timeout_sec
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        if self._default_model:
            self._models[self._default_model] = genai.GenerativeModel(self._default_model)

    def generate_json(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_output_tokens: int = 1024,
    ) -> str:
        """Purpose: Generate a JSON-mode text response from a string prompt.
        Inputs/Outputs: Input is the rendered prompt and optional model/config; returns
            the raw response text (expected to be a JSON document).
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content.
        Failure Modes: SDK and network errors propagate; the caller falls back.
        If Removed: Query extraction cannot call the hosted model.
        Testing Notes: Mock genai.GenerativeModel and assert the response text returns.
        """
        # Resolve model name and ensure a cached model instance exists.
        model_name = _normalize_model_name(model) if model else self._default_model
        if not model_name:
            raise ValueError("Gemini model name is required")
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        response = self._models[model_name].generate_content(
            prompt,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
                "response_mime_type": "application/json",
            },
            request_options={"timeout": self._timeout_sec},
        )
        text: Optional[str] = getattr(response, "text", None)
        return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    # "models/gemini-x" and "gemini-x" name the same model.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
