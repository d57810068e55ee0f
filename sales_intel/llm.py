"""
OpenAI chat helper shared by the stages, the social synthesis, and message
generation.

chat_json() sends a chat completion and parses the reply as a JSON object,
stripping a markdown code fence if the model added one. Failures surface as
IntelError kinds so callers can choose between a fallback and a stage error.
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, APIError, APITimeoutError, AuthenticationError, RateLimitError

from .errors import ConfigMissingError, ParseFailureError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
REQUEST_TIMEOUT = 60


def get_client(api_key: Optional[str]) -> OpenAI:
    if not api_key:
        raise ConfigMissingError("OpenAI API key not configured")
    return OpenAI(api_key=api_key)


def strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_json_reply(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(strip_code_fence(text))
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseFailureError(f"AI response was not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ParseFailureError("AI response was not a JSON object")
    return data


def chat_json(
    messages: List[Dict[str, Any]],
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    temperature: float = 0.7,
    max_tokens: Optional[int] = None,
    client: Optional[Any] = None,
    repair: bool = False,
) -> Dict[str, Any]:
    """
    Run a JSON-mode chat completion and return the parsed object.

    Args:
        messages: chat messages (content may be a list of parts for vision)
        api_key: used only when client is None
        client: an OpenAI client or anything with the same chat.completions.create
        repair: attempt repair_json() before giving up on malformed JSON

    Raises:
        ConfigMissingError, RateLimitedError, UpstreamError, ParseFailureError
    """
    client = client or get_client(api_key)
    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
        "timeout": REQUEST_TIMEOUT,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    try:
        response = client.chat.completions.create(**kwargs)
    except AuthenticationError as e:
        raise ConfigMissingError(f"OpenAI rejected the API key: {e}")
    except RateLimitError as e:
        raise RateLimitedError(f"OpenAI rate limit: {e}")
    except (APITimeoutError, APIError) as e:
        raise UpstreamError(f"OpenAI request failed: {e}")

    choice = response.choices[0] if getattr(response, "choices", None) else None
    if not choice or not getattr(choice, "message", None):
        raise ParseFailureError("AI response had no content")
    content = choice.message.content or ""
    try:
        return parse_json_reply(content)
    except ParseFailureError:
        if not repair:
            raise
        logger.warning("Malformed JSON from model (%s chars); attempting repair", len(content))
        return repair_json(content)


def repair_json(text: str) -> Dict[str, Any]:
    """
    Best-effort repair of a truncated or sloppy JSON object: smart quotes,
    trailing commas, an unterminated string and unclosed braces.

    Raises:
        ParseFailureError: when the text still does not parse
    """
    repaired = strip_code_fence(text)
    repaired = repaired.replace("“", '"').replace("”", '"')
    repaired = repaired.replace("‘", "'").replace("’", "'")
    open_braces = repaired.count("{")
    close_braces = repaired.count("}")
    if open_braces > close_braces:
        if repaired.count('"') % 2:
            repaired += '"'
        repaired += "}" * (open_braces - close_braces)
    repaired = re.sub(r",\s*}", "}", repaired)
    repaired = re.sub(r",\s*]", "]", repaired)
    return parse_json_reply(repaired)
