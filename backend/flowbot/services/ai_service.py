# /flowbot/services/ai_service.py

import asyncio
import logging
from typing import Optional

from google import genai
from google.genai.types import GenerateContentConfig
from openai import AsyncOpenAI

from flowbot.config.settings import settings
from flowbot.utils.circuit_breaker import CircuitBreaker
from flowbot.utils.metrics import ai_requests_counter

# Text generation for ai_response nodes and for the default reply when no
# flow matches. Gemini is tried first, OpenAI second, then a fixed apology.

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Desculpe, estou com dificuldades para responder agora. Pode tentar novamente em instantes?"


class AIService:
    def __init__(
        self,
        gemini_api_key: Optional[str],
        openai_api_key: Optional[str],
        gemini_model: str,
        openai_model: str,
    ):
        self.gemini_client = genai.Client(api_key=gemini_api_key) if gemini_api_key else None
        self.openai_client = AsyncOpenAI(api_key=openai_api_key) if openai_api_key else None
        self.gemini_model = gemini_model
        self.openai_model = openai_model
        self.gemini_breaker = CircuitBreaker("gemini")
        self.openai_breaker = CircuitBreaker("openai")

    async def respond(self, prompt: str, user_message: str) -> str:
        """
        Generates a reply to `user_message` following the instructions in `prompt`.

        Never raises: when every provider fails (or none is configured) the
        fixed fallback reply is returned.
        """
        if self.gemini_client:
            try:
                response = await self.gemini_breaker.call(self._generate_gemini_response, prompt, user_message)
                if response:
                    ai_requests_counter.labels(model="gemini", status="success").inc()
                    return response
            except Exception as e:
                logger.error(f"Gemini API call failed: {e}")
                ai_requests_counter.labels(model="gemini", status="error").inc()

        if self.openai_client:
            try:
                response = await self.openai_breaker.call(self._generate_openai_response, prompt, user_message)
                if response:
                    ai_requests_counter.labels(model="openai", status="success").inc()
                    return response
            except Exception as e:
                logger.error(f"OpenAI fallback failed: {e}")
                ai_requests_counter.labels(model="openai", status="error").inc()

        return FALLBACK_REPLY

    async def _generate_gemini_response(self, prompt: str, user_message: str) -> str:
        response = await asyncio.to_thread(
            self.gemini_client.models.generate_content,
            model=self.gemini_model,
            contents=user_message or " ",
            config=GenerateContentConfig(system_instruction=prompt, temperature=0.7),
        )
        return (response.text or "").strip()

    async def _generate_openai_response(self, prompt: str, user_message: str) -> str:
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": user_message},
        ]
        response = await self.openai_client.chat.completions.create(
            model=self.openai_model, messages=messages, temperature=0.7
        )
        return (response.choices[0].message.content or "").strip()


# Globally accessible instance
ai_service = AIService(
    settings.gemini_api_key,
    settings.openai_api_key,
    settings.ai_model_gemini,
    settings.ai_model_openai,
)
