"""Product description generation using a local Ollama vision model.

Writes storefront copy for a newly received product from its photos and
merchandising details.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from boutiqueflow.config import settings

logger = logging.getLogger(__name__)

MAX_IMAGES = 10


class OllamaError(Exception):
    """Raised when Ollama API call fails."""


class DescriptionError(Exception):
    """Raised when a product description cannot be generated."""


@dataclass(frozen=True)
class ProductDetails:
    """Merchandising details supplied alongside the product photos."""

    product_name: str = ""
    vendor: str = ""
    color: str = ""
    category: str = ""
    vendor_description: str = ""


@dataclass(frozen=True)
class GeneratedDescription:
    """Parsed model output."""

    description: str
    meta_description: str
    raw: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": True,
            "description": self.description,
            "metaDescription": self.meta_description,
            "raw": self.raw,
        }


DESCRIPTION_PROMPT = """You are a copywriter for {store_name}, an upscale women's boutique known for stylish, curated fashion. Write a product description for our online store.

Product Details:
- Product Name: {product_name}
- Vendor/Brand: {vendor}
- Color: {color}
- Category: {category}
{vendor_description_line}
Based on the product images and details above, write a product description following this exact structure:

**OPENING (2-3 sentences):**
Start with an engaging hook that captures the item's appeal and vibe. Mention the brand name and product name naturally. Describe what makes this piece special and when/where to wear it.

**FEATURES (5-6 bullet points, one per line):**
Each bullet should be on its own line and cover:
- Key design details and embellishments visible in the images
- Fabric/material if known or visible
- Fit and silhouette (relaxed, fitted, oversized, etc.)
- Color and any accent colors or patterns
- Styling suggestions (what to pair it with)
- Care instructions if mentioned in vendor description, otherwise note "See label for care instructions"

Keep the tone warm, sophisticated, and aspirational, like a trusted friend who works in fashion giving advice. Avoid over-the-top phrases like "isn't just a [item], it's a statement" or "elevate your wardrobe." Be genuine and specific.

Total length should be 150-250 words.

**META DESCRIPTION:**
Write an SEO-friendly meta description under 160 characters. Include the brand name, product type, and one key appeal (like the occasion, season, or standout feature).

Format your response exactly like this:
---DESCRIPTION---
[Opening sentences]

[Bullet points, each on its own line starting with •]

---META---
[Meta description]

---END---"""

_DESCRIPTION_RE = re.compile(r"---DESCRIPTION---(.*?)---META---", re.DOTALL)
_META_RE = re.compile(r"---META---(.*?)---END---", re.DOTALL)


class OllamaClient:
    """Client for Ollama local LLM API.

    Provides async interface to Ollama for text generation, optionally
    grounded on base64-encoded images for multimodal models.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL. Defaults to settings.ollama_base_url.
            model: Model name to use. Defaults to settings.ollama_model.
            timeout: Request timeout in seconds. Defaults to settings.ollama_timeout.
        """
        self.base_url = base_url or settings.ollama_base_url
        self.model = model or settings.ollama_model
        self.timeout = timeout or settings.ollama_timeout

    async def generate(
        self,
        prompt: str,
        images: list[bytes] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """Generate text completion using Ollama.

        Args:
            prompt: The prompt to send to the model.
            images: Raw image bytes to attach to the prompt.
            temperature: Sampling temperature (0.0-1.0).
            max_tokens: Maximum tokens to generate.

        Returns:
            Generated text response.

        Raises:
            OllamaError: If the API call fails.
        """
        url = f"{self.base_url}/api/generate"
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        if images:
            payload["images"] = [base64.b64encode(image).decode("ascii") for image in images]

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()

                data: dict[str, Any] = response.json()
                result: str = data.get("response", "")
                return result

        except httpx.TimeoutException as e:
            logger.error("Ollama request timed out: %s", e)
            raise OllamaError(f"Request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error("Ollama HTTP error: %s", e)
            raise OllamaError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Ollama request failed: %s", e)
            raise OllamaError(f"Request failed: {e}") from e

    async def is_available(self) -> bool:
        """Check if Ollama service is available."""
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                return response.status_code == 200
        except httpx.RequestError:
            return False


def build_description_prompt(details: ProductDetails, store_name: str | None = None) -> str:
    """Fill the description prompt with product details."""
    vendor_line = (
        f"- Vendor's Description: {details.vendor_description}\n"
        if details.vendor_description
        else ""
    )
    return DESCRIPTION_PROMPT.format(
        store_name=store_name or settings.store_name,
        product_name=details.product_name or "Not provided",
        vendor=details.vendor or "Not provided",
        color=details.color or "Not provided",
        category=details.category or "Not provided",
        vendor_description_line=vendor_line,
    )


def parse_description_response(response: str, footer: str | None = None) -> GeneratedDescription:
    """Split model output into description and meta description.

    Falls back to the whole response as the description and an empty meta
    description when the markers are missing. The store contact footer is
    appended to the description.
    """
    if footer is None:
        footer = settings.store_contact_footer

    description_match = _DESCRIPTION_RE.search(response)
    meta_match = _META_RE.search(response)

    description = description_match.group(1).strip() if description_match else response
    if footer:
        description = f"{description}\n\n{footer}"
    meta = meta_match.group(1).strip() if meta_match else ""

    return GeneratedDescription(description=description, meta_description=meta, raw=response)


async def generate_product_description(
    details: ProductDetails,
    images: list[bytes],
    ollama_client: OllamaClient | None = None,
) -> GeneratedDescription:
    """Write a product description from photos and details.

    Raises:
        DescriptionError: If no images are given or the model returns nothing.
        OllamaError: If the Ollama API call fails.
    """
    if not images:
        raise DescriptionError("At least one image is required")
    if len(images) > MAX_IMAGES:
        raise DescriptionError(f"At most {MAX_IMAGES} images are allowed")

    if ollama_client is None:
        ollama_client = OllamaClient()

    response = await ollama_client.generate(build_description_prompt(details), images=images)
    if not response:
        raise DescriptionError("Empty response from Ollama")

    result = parse_description_response(response)
    logger.info(
        "Generated description for '%s' (%d chars)",
        details.product_name or "(unnamed)",
        len(result.description),
    )
    return result
