"""Chat-completion client for sending prompts and getting responses."""

import logging
from typing import Any, Dict, Optional

import aiohttp

from ..errors import HTTPError, InvalidResponse, InvalidURL
from ..models.settings import ChatSettings
from ..utils.security import mask_api_key, sanitize_api_key
from ..utils.url_builder import build_url

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_ENDPOINT = "chat/completions"


class ChatCompletionClient:
    """Stateless wrapper around an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, timeout: Optional[aiohttp.ClientTimeout] = None):
        """Initialize the client.

        Args:
            timeout: aiohttp timeout; by default none at all, because
                summarizing a long transcript can take a long time
        """
        self.timeout = timeout or aiohttp.ClientTimeout(total=None)

    async def complete(self, prompt: str, settings: ChatSettings) -> str:
        """Send a prompt as a single user message and return the reply.

        Args:
            prompt: Prompt to send
            settings: Server URL, API key and model

        Returns:
            Content of the first choice's message

        Raises:
            InvalidURL: The base URL cannot be turned into an endpoint URL
            HTTPError: The server answered with a non-2xx status
            InvalidResponse: The reply lacks choices[0].message.content
        """
        url = build_url(settings.base_url, CHAT_COMPLETIONS_ENDPOINT)
        if url is None:
            raise InvalidURL()

        headers = {"Content-Type": "application/json"}
        api_key = sanitize_api_key(settings.api_key) if settings.api_key else ""
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            logger.debug(f"Using LLM API key {mask_api_key(api_key)}")
        else:
            logger.debug("No API key provided for LLM request.")

        data = {
            "model": settings.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ]
        }

        logger.info(f"Sending LLM request to {url}")
        logger.info(f"Prompt length: {len(prompt)} characters")

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, headers=headers, json=data) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text(errors="replace")
                    logger.error(f"LLM API error: {response.status} - {error_text[:200]}")
                    raise HTTPError(response.status)

                try:
                    result = await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponse() from e

        content = self._extract_content(result)
        logger.info(f"LLM response received ({len(content)} characters)")
        self._log_usage(result)
        return content

    @staticmethod
    def _extract_content(result: Any) -> str:
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.error(f"Unexpected LLM response: {str(result)[:500]}")
            raise InvalidResponse("Unexpected response format from LLM server.")
        if not isinstance(content, str):
            raise InvalidResponse("Unexpected response format from LLM server.")
        return content

    @staticmethod
    def _log_usage(result: Dict[str, Any]) -> None:
        usage = result.get("usage")
        if not isinstance(usage, dict):
            return
        logger.info(
            f"Token usage - Prompt: {usage.get('prompt_tokens', 0)}, "
            f"Completion: {usage.get('completion_tokens', 0)}, "
            f"Total: {usage.get('total_tokens', 0)}"
        )
