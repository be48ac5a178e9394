"""
Completion Service
==================
Stateless single-turn text completion: ``complete(prompt) -> str``.
Provider SDKs are imported lazily so only the configured one is needed.
"""
import os
import logging

from backend.config import config
from backend.errors import CompletionError

logger = logging.getLogger(__name__)

ASSISTANT_MODELS = {
    # Google
    "gemini-flash": {"provider": "gemini", "model": "gemini-2.0-flash"},
    "gemini-pro": {"provider": "gemini", "model": "gemini-1.5-pro"},
    # OpenAI
    "gpt-4o-mini": {"provider": "openai", "model": "gpt-4o-mini"},
    "gpt-4o": {"provider": "openai", "model": "gpt-4o"},
    # Anthropic
    "haiku": {"provider": "anthropic", "model": "claude-haiku-4-5-20251001"},
    "sonnet": {"provider": "anthropic", "model": "claude-sonnet-4-20250514"},
}
DEFAULT_MODEL = "gemini-flash"
MAX_TOKENS = 1500


def get_assistant_model(alias=None):
    """Resolve a model alias (or the configured one) to {provider, model}."""
    choice = alias or config.assistant_model or DEFAULT_MODEL
    return ASSISTANT_MODELS.get(choice, ASSISTANT_MODELS[DEFAULT_MODEL])


def _api_key(env_name):
    key = os.getenv(env_name)
    if not key:
        raise CompletionError(f"{env_name} not set in .env")
    return key


def _complete_with_gemini(prompt, model):
    import google.generativeai as genai
    genai.configure(api_key=_api_key("GEMINI_API_KEY"))
    gen_model = genai.GenerativeModel(model)
    response = gen_model.generate_content(prompt)
    return response.text.strip()


def _complete_with_openai(prompt, model):
    from openai import OpenAI
    client = OpenAI(api_key=_api_key("OPENAI_API_KEY"))
    response = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        max_tokens=MAX_TOKENS,
        temperature=0.3,
    )
    return (response.choices[0].message.content or "").strip()


def _complete_with_anthropic(prompt, model):
    import anthropic
    client = anthropic.Anthropic(api_key=_api_key("ANTHROPIC_API_KEY"))
    response = client.messages.create(
        model=model,
        max_tokens=MAX_TOKENS,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text.strip()


PROVIDERS = {
    "gemini": _complete_with_gemini,
    "openai": _complete_with_openai,
    "anthropic": _complete_with_anthropic,
}


def complete(prompt, model_alias=None):
    """Send one prompt to the configured provider and return the response text."""
    model_info = get_assistant_model(model_alias)
    provider = PROVIDERS.get(model_info["provider"])
    if provider is None:
        raise CompletionError(f"Unknown provider: {model_info['provider']}")
    try:
        return provider(prompt, model_info["model"])
    except CompletionError:
        raise
    except Exception as e:
        logger.error("Completion call to %s failed: %s", model_info["model"], e)
        raise CompletionError("The language model could not be reached.") from e
