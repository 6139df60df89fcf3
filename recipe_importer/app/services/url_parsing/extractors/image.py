"""Recipe extraction from a photograph using a vision-capable model."""

import base64
import logging

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services.url_parsing.extractors.llm import SYSTEM_PROMPT, run_structured_extraction
from recipe_importer.app.services.url_parsing.models import ExtractionResult, ImportErrorCode, failure

logger = logging.getLogger(__name__)

IMAGE_PROMPT = """Extract recipe information from the image.
Identify the recipe name, ingredients list, and cooking instructions.

If the image does not contain a valid recipe, return an empty name field.
"""


async def extract_recipe_from_image(image_bytes: bytes, content_type: str = "image/jpeg") -> ExtractionResult:
    if not image_bytes:
        return failure(ImportErrorCode.EXTRACTION_FAILED, "No image provided")
    if not (content_type or "").lower().startswith("image/"):
        return failure(ImportErrorCode.EXTRACTION_FAILED, f"Unsupported image type: {content_type}")

    encoded = base64.b64encode(image_bytes).decode("ascii")
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": IMAGE_PROMPT},
                {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
            ],
        },
    ]
    logger.info("Submitting %d byte image for recipe extraction", len(image_bytes))
    return await run_structured_extraction(messages, get_settings().llm_vision_model_name)
