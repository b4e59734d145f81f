"""
Claude API client for program generation.
"""

import json
import re

import anthropic
from loguru import logger

from program_forge.errors import ErrorCode, GenerationError, TransientGenerationError


FENCE_OPEN_RE = re.compile(r"^```\w*\n?")
FENCE_CLOSE_RE = re.compile(r"\n?```$")


def extract_json_object(text):
    """
    Parse the JSON object out of a model reply.

    Markdown code fences are stripped, then the outermost {...} span is
    decoded. Raises ValueError when nothing parseable is found.
    """
    text = (text or "").strip()
    if text.startswith("```"):
        text = FENCE_OPEN_RE.sub("", text)
        text = FENCE_CLOSE_RE.sub("", text)
        text = text.strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in model response")
    return json.loads(text[start:end + 1])


class ProgramModelClient:
    """Sends generation prompts to Claude and returns parsed JSON."""

    def __init__(self, api_key, config, model=None, max_tokens=None, timeout=None, client=None):
        """
        Initialize the model client.

        Args:
            api_key: Anthropic API key
            config: Full configuration dictionary
            model: Claude model to use (defaults to config value)
            max_tokens: Maximum tokens for response (defaults to config value)
            timeout: Per-attempt timeout in seconds (defaults to config value)
            client: Pre-built Anthropic client (tests pass a mock here)
        """
        self.client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout or config['claude'].get('timeout', 120),
            max_retries=0,
        )
        self.model = model or config['claude']['model']
        self.max_tokens = max_tokens or config['claude']['max_tokens']

    def generate_program(self, prompt):
        """
        Run one generation attempt.

        Returns:
            The parsed JSON object from the reply

        Raises:
            TransientGenerationError: timeout, network, overload or unreadable reply
            GenerationError: the provider rejected the request
        """
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ]
            )
        except anthropic.APITimeoutError as exc:
            raise TransientGenerationError(ErrorCode.MODEL_TIMEOUT, str(exc)) from exc
        except anthropic.APIConnectionError as exc:
            raise TransientGenerationError(ErrorCode.MODEL_NETWORK_ERROR, str(exc)) from exc
        except (anthropic.RateLimitError, anthropic.InternalServerError) as exc:
            raise TransientGenerationError(ErrorCode.MODEL_UNAVAILABLE, str(exc)) from exc
        except anthropic.APIStatusError as exc:
            raise GenerationError(ErrorCode.MODEL_REQUEST_REJECTED, str(exc)) from exc

        try:
            text = message.content[0].text
            if message.stop_reason == "max_tokens":
                logger.warning("Model reply hit max_tokens; JSON is likely truncated")
            return extract_json_object(text)
        except (IndexError, AttributeError, ValueError) as exc:
            raise TransientGenerationError(ErrorCode.MODEL_MALFORMED_RESPONSE, str(exc)) from exc
