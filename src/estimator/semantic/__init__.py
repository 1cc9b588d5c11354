"""Vision model extraction of estimate line items."""

from .inference import VisionExtractionClient
from .prompts import ESTIMATE_EXTRACTION_SYSTEM, estimate_extraction_user

__all__ = ["VisionExtractionClient", "ESTIMATE_EXTRACTION_SYSTEM", "estimate_extraction_user"]
