import logging
from typing import Optional, Sequence

import requests

from errors import GenerationError
from models.generation import ReferenceAsset

logger = logging.getLogger("GenerationClient")

DEFAULT_TIMEOUT = 300
# Older endpoints answer with animationUrl instead of assetUrl
ASSET_URL_KEYS = ("assetUrl", "animationUrl", "imageUrl", "videoUrl")


class GenerationClient:
    def __init__(self, endpoint_url: str, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str, reference_assets: Sequence[ReferenceAsset]) -> str:
        """Submit one prompt with its reference assets and return the asset URL"""
        files = [
            (f"referenceImage{index}", (asset.name, asset.data, asset.mime_type))
            for index, asset in enumerate(reference_assets)
        ]
        logger.debug(f"Submitting prompt ({len(files)} reference assets): {prompt[:100]}")
        try:
            response = self.session.post(
                self.endpoint_url,
                data={"prompt": prompt},
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GenerationError(f"Generation endpoint error: {e}")

        try:
            payload = response.json()
        except ValueError:
            raise GenerationError(
                f"Generation endpoint returned non-JSON response: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        if not isinstance(payload, dict):
            raise GenerationError(f"Unexpected response payload: {payload!r}", status_code=response.status_code)
        if payload.get("error"):
            raise GenerationError(str(payload["error"]), status_code=response.status_code)
        if response.status_code != 200:
            raise GenerationError(
                f"Generation failed: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )
        if not payload.get("success"):
            raise GenerationError("Generation endpoint did not report success", status_code=response.status_code)

        for key in ASSET_URL_KEYS:
            asset_url = payload.get(key)
            if asset_url:
                logger.info(f"Generated asset URL: {asset_url}")
                return asset_url
        raise GenerationError("Generation succeeded but no asset URL was returned", status_code=response.status_code)
