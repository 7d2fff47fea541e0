"""
LLM access for the nuanced applicability review.

Providers are tried in a fixed fallback order; the one that last answered
is tried first on the next call. Replies requested as JSON are parsed here,
so callers get a dict or an exception.
"""

import json
import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional

from groq import AsyncGroq
from google import genai

from ..core.config import settings


logger = logging.getLogger(__name__)

# (settings attribute, provider kind, label), in fallback order
PROVIDER_CHAIN = [
    ("GROQ_API_KEY", "groq", "primary"),
    ("GEMINI_API_KEY", "gemini", "primary"),
    ("GEMINI_API_KEY_2", "gemini", "backup"),
    ("GROQ_API_KEY_2", "groq", "last resort"),
]

RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "quota", "resource exhausted")

JSON_INSTRUCTION = "\n\nRespond ONLY with valid JSON. No explanations or markdown."

CODE_FENCE = re.compile(r"```(?:json)?\s*")
JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class Provider(NamedTuple):
    name: str
    kind: str     # "groq" or "gemini"
    client: Any


def parse_json_reply(reply: Optional[str]) -> Dict[str, Any]:
    """
    Parse a model reply that should hold one JSON object.

    Markdown code fences are stripped; if the object is wrapped in prose,
    the outermost {...} span is tried. Raises ValueError otherwise.
    """
    cleaned = CODE_FENCE.sub("", reply or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = JSON_OBJECT.search(cleaned)
        if not match:
            raise ValueError(f"LLM reply is not JSON: {cleaned[:200]!r}")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"LLM reply is not JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError("LLM reply must be a JSON object")
    return parsed


class LLMService:
    """Groq and Google Gemini behind one `generate` call."""

    def __init__(self):
        self.providers: List[Provider] = []
        self.current_index: int = 0

        for key_name, kind, label in PROVIDER_CHAIN:
            api_key = getattr(settings, key_name)
            if not api_key:
                continue
            client = AsyncGroq(api_key=api_key) if kind == "groq" else genai.Client(api_key=api_key)
            self.providers.append(Provider(f"{key_name} ({label})", kind, client))

        logger.info(
            "%s LLM service initialized with %d providers: %s",
            settings.PROJECT_NAME,
            len(self.providers),
            ", ".join(p.name for p in self.providers) or "none",
        )

    async def _call(self, provider: Provider, messages: List[dict], temperature: float, max_tokens: int) -> str:
        if provider.kind == "groq":
            response = await provider.client.chat.completions.create(
                model=settings.GROQ_MODEL,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
            return response.choices[0].message.content

        # Gemini takes a single prompt; system instructions go first
        contents = "".join(
            f"Instructions: {msg['content']}\n\n" if msg["role"] == "system" else msg["content"]
            for msg in messages
        )
        response = await provider.client.aio.models.generate_content(
            model=settings.GEMINI_MODEL,
            contents=contents,
            config={
                "temperature": temperature,
                "max_output_tokens": max_tokens
            }
        )
        return response.text

    async def generate(
            self,
            prompt: str,
            system_prompt: Optional[str] = None,
            temperature: float = 0.7,
            max_tokens: int = 1024
    ) -> str:
        """
        Generate a reply, walking the provider chain until one answers.

        Raises RuntimeError when no provider is configured or all of them fail.
        """
        if not self.providers:
            raise RuntimeError("No LLM service available. Please configure GROQ_API_KEY or GEMINI_API_KEY.")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        last_error = None
        for offset in range(len(self.providers)):
            idx = (self.current_index + offset) % len(self.providers)
            provider = self.providers[idx]
            try:
                reply = await self._call(provider, messages, temperature, max_tokens)
            except Exception as e:
                last_error = e
                if any(marker in str(e).lower() for marker in RATE_LIMIT_MARKERS):
                    logger.warning("Rate limited on %s, trying next provider", provider.name)
                else:
                    logger.warning("LLM error (%s): %s", provider.name, e)
                continue

            self.current_index = idx
            return reply

        raise RuntimeError(f"All LLM providers failed. Last error: {last_error}")

    async def generate_json(
            self,
            prompt: str,
            system_prompt: Optional[str] = None,
            temperature: float = 0.3
    ) -> Dict[str, Any]:
        """Generate and parse a JSON object; ValueError if the reply is not one."""
        reply = await self.generate(prompt, (system_prompt or "") + JSON_INSTRUCTION, temperature)
        return parse_json_reply(reply)


# Singleton instance
llm_service = LLMService()
