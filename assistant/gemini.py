"""
Gemini generateContent over REST.

Contents use the API's own shape so the dispatcher can hand the model's
functionCall content straight back with the matching functionResponse.
"""
import logging

import requests

from core.errors import ModelError

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}

SYSTEM_PROMPT = (
    "You are Lifeline, a blood donation assistant. Help donors and recipients "
    "find compatible donors, blood drives and compatibility facts, and register "
    "emergency blood requests. Use the provided functions instead of guessing. "
    "Never ask for or reveal donor names or phone numbers. For emergencies, "
    "remind the user to also call the hospital blood bank."
)


def _safe_json(resp):
    try:
        return resp.json()
    except ValueError:
        txt = (resp.text or "")[:600]
        raise ModelError(f"Non-JSON response. HTTP {resp.status_code}. Body: {txt}")


def parse_reply(data):
    """
    -> {"text": str, "functionCalls": [{"name", "args"}], "content": <model content>}
    """
    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
        raise ModelError(f"Gemini returned no answer ({reason})")

    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    if not parts:
        reason = candidates[0].get("finishReason", "empty")
        raise ModelError(f"Gemini returned an empty answer ({reason})")

    texts = []
    calls = []
    for p in parts:
        if "text" in p:
            texts.append(p["text"])
        fc = p.get("functionCall")
        if fc and fc.get("name"):
            calls.append({"name": fc["name"], "args": fc.get("args") or {}})

    return {
        "text": "".join(texts).strip(),
        "functionCalls": calls,
        "content": {"role": "model", "parts": parts},
    }


class GeminiClient:

    def __init__(self, api_key, model="gemini-1.5-flash",
                 base_url="https://generativelanguage.googleapis.com/v1beta",
                 timeout=25, session=None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, contents, tools=None):
        if not self.api_key:
            raise ModelError("GOOGLE_AI_KEY missing")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "generationConfig": GENERATION_CONFIG,
        }
        if tools:
            payload["tools"] = [{"functionDeclarations": tools}]

        try:
            resp = self.session.post(
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Gemini request failed: %s", e.__class__.__name__)
            raise ModelError("Gemini unreachable") from e

        data = _safe_json(resp)
        if not isinstance(data, dict):
            raise ModelError(f"Unexpected Gemini payload. HTTP {resp.status_code}.")
        if resp.status_code >= 400:
            err = data.get("error") or {}
            raise ModelError(
                f"Gemini request failed. HTTP {resp.status_code}. {err.get('message', '')}".strip(),
                details={"status": resp.status_code},
            )
        return parse_reply(data)
