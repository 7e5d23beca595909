"""
LLM text generation using Google Generative AI (Gemini).
Uses LLM_API_KEY from environment (Gemini API key from Google AI Studio).

Callers describe the expected output with a pydantic model; chat_json asks the
model for a JSON object and validates the reply against it.
"""
import asyncio
import json
import logging
import os
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"

T = TypeVar("T", bound=BaseModel)


class LLMNotConfiguredError(RuntimeError):
    """LLM_API_KEY is not set."""


class LLMResponseError(RuntimeError):
    """The model call failed or returned something unusable."""


def _get_api_key() -> Optional[str]:
    return os.environ.get("LLM_API_KEY")


def _sync_chat(system_prompt: str, user_text: str, model: str = DEFAULT_MODEL) -> str:
    """Synchronous chat completion using Google Generative AI."""
    import google.generativeai as genai
    api_key = _get_api_key()
    if not api_key:
        raise LLMNotConfiguredError("LLM_API_KEY not found in environment")
    genai.configure(api_key=api_key)
    model_name = model if model and "gemini" in model else DEFAULT_MODEL
    gemini = genai.GenerativeModel(
        model_name,
        system_instruction=system_prompt,
    )
    try:
        response = gemini.generate_content(user_text)
        # .text raises ValueError when the candidate was blocked
        text = response.text if response else ""
    except Exception as e:
        logger.error(f"Gemini API error: {e}")
        raise LLMResponseError(f"LLM generation failed: {e}") from e
    if not text:
        raise LLMResponseError("Empty response from LLM")
    return text


async def chat(
    system_prompt: str,
    user_text: str,
    model: str = DEFAULT_MODEL,
) -> str:
    """Async chat completion. Runs sync SDK in thread pool."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(
        None,
        lambda: _sync_chat(system_prompt, user_text, model),
    )


def parse_json_reply(raw_output: str) -> dict:
    """Parse a JSON object from model output, handling markdown code blocks."""
    text = (raw_output or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"LLM reply is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise LLMResponseError("LLM reply is not a JSON object")
    return parsed


async def chat_json(
    system_prompt: str,
    user_text: str,
    output_model: Type[T],
    model: str = DEFAULT_MODEL,
) -> T:
    """Ask for a JSON object matching output_model's schema and validate the reply."""
    schema = json.dumps(output_model.model_json_schema(), ensure_ascii=False)
    instructions = (
        f"{system_prompt}\n\n"
        f"Respond with a single JSON object matching this JSON schema and nothing else:\n{schema}"
    )
    raw = await chat(instructions, user_text, model=model)
    data = parse_json_reply(raw)
    try:
        return output_model.model_validate(data)
    except ValidationError as e:
        logger.warning("LLM reply failed schema validation for %s: %s", output_model.__name__, e)
        raise LLMResponseError(f"LLM reply does not match {output_model.__name__}") from e
