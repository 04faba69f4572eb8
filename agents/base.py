"""
Base class for the Claude-backed external collaborators.

Each collaborator (risk analysis, document forensics, entity search) makes
one structured request: a system prompt, a user message, and a JSON answer
in a ```json block. Subclasses own their prompt, response parsing and the
fallback used when the service cannot answer.
"""

import asyncio
import json
import os
import re
import anthropic
from abc import ABC, abstractmethod

from config import get_config, get_model_for_agent
from logger import get_logger


logger = get_logger(__name__)


COMPLIANCE_OUTPUT_RULES = """## Output Format
Return your answer as valid JSON in a ```json code block. Ensure all strings are properly escaped.
Use exactly the field names and enum values requested; do not add commentary outside the block."""

# Wait used when a 429 carries no retry-after header (per-minute quotas)
DEFAULT_RATE_LIMIT_WAIT = 60

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)


# Set once at startup by the CLI
_API_KEY: str | None = None


def set_api_key(key: str):
    """Set the API key for every collaborator created afterwards."""
    global _API_KEY
    _API_KEY = key
    os.environ["ANTHROPIC_API_KEY"] = key
    logger.debug("API key set globally")


def get_api_key() -> str | None:
    return _API_KEY or os.environ.get("ANTHROPIC_API_KEY")


def extract_json(text: str):
    """JSON from a ```json fence, or the whole text; None if neither parses."""
    match = _JSON_FENCE.search(text or "")
    try:
        return json.loads(match.group(1) if match else text)
    except (json.JSONDecodeError, TypeError):
        return None


def _retry_after_seconds(error: anthropic.RateLimitError) -> int:
    """Seconds to wait before retrying a rate-limited request."""
    response = getattr(error, "response", None)
    header = response.headers.get("retry-after") if response is not None else None
    try:
        return int(float(header)) + 5
    except (TypeError, ValueError):
        return DEFAULT_RATE_LIMIT_WAIT


class BaseAgent(ABC):
    """
    One external collaborator backed by the Messages API.

    Transport errors are retried by the SDK (Config.max_retries); rate limits
    are additionally waited out here, honouring the retry-after header.
    """

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int | None = None,
        api_key: str | None = None,
    ):
        config = get_config()
        key = api_key or get_api_key() or config.api_key
        client_kwargs = {"max_retries": config.max_retries}
        if key:
            client_kwargs["api_key"] = key
        self.client = anthropic.Anthropic(**client_kwargs)

        self._explicit_model = model
        self.max_tokens = max_tokens or config.max_tokens
        self.rate_limit_attempts = max(1, config.max_retries)

    @property
    def model(self) -> str:
        return self._explicit_model or get_model_for_agent(self.name)

    @model.setter
    def model(self, value: str):
        self._explicit_model = value

    @property
    @abstractmethod
    def name(self) -> str:
        """Collaborator name, used for model routing and log prefixes."""

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        pass

    async def run(self, user_message: str) -> dict:
        """
        Send one request and return {"text", "json", "model", "usage"}.

        The blocking SDK call runs in a worker thread so other coroutines
        (document uploads, the review prompt) keep moving meanwhile.

        Raises:
            anthropic.APIError: the request failed after all retries
        """
        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        }
        logger.debug(f"[{self.name}] Requesting {request['model']}")

        for attempt in range(1, self.rate_limit_attempts + 1):
            try:
                response = await asyncio.to_thread(self.client.messages.create, **request)
                break
            except anthropic.RateLimitError as e:
                if attempt == self.rate_limit_attempts:
                    logger.error(f"[{self.name}] Rate limit exceeded after {attempt} attempts")
                    raise
                wait = _retry_after_seconds(e)
                logger.warning(f"[{self.name}] Rate limited, retrying in {wait}s (attempt {attempt}/{self.rate_limit_attempts})")
                await asyncio.sleep(wait)

        text = "".join(block.text for block in response.content if hasattr(block, "text"))
        return {
            "text": text,
            "json": extract_json(text),
            "model": request["model"],
            "usage": {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        }
