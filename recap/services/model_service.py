"""Listing the models offered by an OpenAI-compatible server."""

import logging
from typing import List

import aiohttp

from ..errors import RecapError
from ..utils.security import sanitize_api_key
from ..utils.url_builder import build_url

logger = logging.getLogger(__name__)

MODELS_ENDPOINT = "models"


class ModelServiceError(RecapError):
    """Raised when the model list cannot be fetched."""


class ModelService:
    """Fetches model identifiers from ``GET /v1/models``."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def list_models(self, base_url: str, api_key: str = "") -> List[str]:
        """Return the ids of all models the server reports.

        Args:
            base_url: Server base URL
            api_key: Optional API key

        Raises:
            ModelServiceError: Invalid URL, HTTP error or unexpected format
        """
        url = build_url(base_url, MODELS_ENDPOINT)
        if url is None:
            raise ModelServiceError("Invalid API URL")

        headers = {"Accept": "application/json", "User-Agent": "Recap/0.1"}
        clean_key = sanitize_api_key(api_key) if api_key else ""
        if clean_key:
            headers["Authorization"] = f"Bearer {clean_key}"

        logger.info(f"Loading models from {url}")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers=headers) as response:
                    if not 200 <= response.status < 300:
                        raise ModelServiceError(f"HTTP error: {response.status}")
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            raise ModelServiceError(f"Failed to load models: {e}") from e

        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise ModelServiceError("Unexpected response format")

        model_ids = [m["id"] for m in models if isinstance(m, dict) and isinstance(m.get("id"), str)]
        logger.info(f"Loaded {len(model_ids)} models")
        return model_ids
