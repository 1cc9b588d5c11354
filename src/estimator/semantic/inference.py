"""Vision model inference for estimate line-item extraction."""

import json
import logging
import re
from typing import Optional

from openai import OpenAI, OpenAIError

from ..errors import ExtractionFailure
from ..models import DocumentKind, EstimateDocument
from .prompts import ESTIMATE_EXTRACTION_SYSTEM, estimate_extraction_user

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class VisionExtractionClient:
    """Client for a vision-capable chat model using the OpenAI API.

    Document bytes in, raw JSON mapping out. The output is untrusted and
    is handed to the normalizer unchanged.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o",
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[OpenAI] = None,
    ):
        """Initialize inference client.

        Args:
            api_key: API key for the OpenAI-compatible endpoint
            model_name: Vision model to use
            base_url: Optional alternative endpoint
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests)
        """
        self.client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,  # retries belong to the caller
        )
        self.model_name = model_name
        logger.info(f"Vision extraction client initialized with model: {model_name}")

    def extract(self, document: EstimateDocument, document_type: DocumentKind) -> dict:
        """Extract raw line-item JSON from an estimate document.

        Args:
            document: Document bytes and MIME type
            document_type: "contractor" or "carrier"

        Returns:
            dict: Decoded model output (current or legacy shape)

        Raises:
            ExtractionFailure: If the call fails or the response is not a JSON object
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": ESTIMATE_EXTRACTION_SYSTEM},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": estimate_extraction_user(document_type)},
                            {"type": "image_url", "image_url": {"url": document.to_data_url()}},
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
                max_tokens=4096,
            )
        except OpenAIError as e:
            logger.error(f"Vision extraction call failed for {document.reference}: {e}")
            raise ExtractionFailure(f"Vision model call failed: {e}") from e

        if not response.choices:
            raise ExtractionFailure("Vision model returned no choices")

        response_text = (response.choices[0].message.content or "{}").strip()
        cleaned = self._extract_json(response_text)

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(f"Unparseable extraction output for {document.reference}: {e}")
            raise ExtractionFailure(f"Vision model returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ExtractionFailure(
                f"Vision model returned {type(data).__name__}, expected a JSON object"
            )

        return data

    def _extract_json(self, text: str) -> str:
        """Strip a markdown code fence if the model wrapped its JSON object in one."""
        fenced = _FENCED_JSON.search(text)
        return fenced.group(1) if fenced else text
