"""
Strategy selection, done once per process from settings.
"""
from functools import lru_cache

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .dispatcher import ConversationDispatcher
from .functions import Toolbox
from .gemini import GeminiClient
from .offline import OfflineModelClient


@lru_cache(maxsize=1)
def get_model_client():
    backend = str(getattr(settings, "LIFELINE_AI_BACKEND", "offline")).strip().lower()

    if backend == "gemini":
        return GeminiClient(
            api_key=getattr(settings, "GOOGLE_AI_KEY", ""),
            model=getattr(settings, "LIFELINE_GEMINI_MODEL", "gemini-1.5-flash"),
            base_url=getattr(settings, "LIFELINE_GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            timeout=int(getattr(settings, "LIFELINE_GEMINI_TIMEOUT", 25)),
        )
    if backend == "offline":
        return OfflineModelClient()

    raise ImproperlyConfigured(f"Unknown LIFELINE_AI_BACKEND: {backend!r}")


def build_dispatcher():
    return ConversationDispatcher(
        get_model_client(),
        Toolbox(),
        feedback=getattr(settings, "LIFELINE_FUNCTION_RESULT_FEEDBACK", "first"),
    )
