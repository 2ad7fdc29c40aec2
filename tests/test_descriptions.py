"""Tests for the product description generator."""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from boutiqueflow.services.descriptions import (
    MAX_IMAGES,
    DescriptionError,
    OllamaClient,
    OllamaError,
    ProductDetails,
    build_description_prompt,
    generate_product_description,
    parse_description_response,
)

MODEL_OUTPUT = """---DESCRIPTION---
Meet the Linen Wrap Dress from Free People.

• Relaxed wrap silhouette
• See label for care instructions

---META---
Free People linen wrap dress in sage, made for warm-weather brunches.

---END---"""

FOOTER = "**Questions? Call us!**"


class TestOllamaClient:
    """Tests for OllamaClient."""

    def test_init_with_custom_values(self) -> None:
        """Test client initialization with custom values."""
        client = OllamaClient(base_url="http://gpu-box:11434", model="llava:13b", timeout=60)
        assert client.base_url == "http://gpu-box:11434"
        assert client.model == "llava:13b"
        assert client.timeout == 60

    async def test_generate_sends_images(self) -> None:
        """Test that images are sent base64-encoded."""
        client = OllamaClient()

        mock_response = MagicMock()
        mock_response.json.return_value = {"response": MODEL_OUTPUT}
        mock_response.raise_for_status = MagicMock()

        with patch.object(
            httpx.AsyncClient, "post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            result = await client.generate("prompt", images=[b"\x89PNG"])

        assert result == MODEL_OUTPUT
        payload = mock_post.call_args[1]["json"]
        assert payload["images"] == [base64.b64encode(b"\x89PNG").decode("ascii")]
        assert payload["stream"] is False

    async def test_generate_timeout(self) -> None:
        """Test timeout handling."""
        client = OllamaClient(timeout=1)

        with patch.object(
            httpx.AsyncClient, "post", new_callable=AsyncMock
        ) as mock_post:
            mock_post.side_effect = httpx.TimeoutException("timeout")

            with pytest.raises(OllamaError, match="timed out"):
                await client.generate("prompt")

    async def test_generate_connection_error(self) -> None:
        """Test connection error handling."""
        client = OllamaClient()

        with patch.object(
            httpx.AsyncClient, "post", new_callable=AsyncMock
        ) as mock_post:
            mock_post.side_effect = httpx.ConnectError("Connection refused")

            with pytest.raises(OllamaError, match="Request failed"):
                await client.generate("prompt")


class TestPrompt:
    """Tests for prompt construction."""

    def test_details_in_prompt(self) -> None:
        """Test that product details are filled in."""
        prompt = build_description_prompt(
            ProductDetails(product_name="Wrap Dress", vendor="Free People", color="Sage"),
            store_name="Test Boutique",
        )
        assert "Test Boutique" in prompt
        assert "- Product Name: Wrap Dress" in prompt
        assert "- Category: Not provided" in prompt
        assert "Vendor's Description" not in prompt

    def test_vendor_description_included(self) -> None:
        """Test that the vendor's copy is passed through when given."""
        prompt = build_description_prompt(ProductDetails(vendor_description="100% linen"))
        assert "- Vendor's Description: 100% linen" in prompt


class TestParseDescriptionResponse:
    """Tests for parse_description_response."""

    def test_parse_markers(self) -> None:
        """Test splitting description and meta description."""
        result = parse_description_response(MODEL_OUTPUT, footer=FOOTER)

        assert result.description.startswith("Meet the Linen Wrap Dress")
        assert result.description.endswith(FOOTER)
        assert "---META---" not in result.description
        assert result.meta_description.startswith("Free People linen wrap dress")
        assert result.raw == MODEL_OUTPUT

    def test_missing_markers(self) -> None:
        """Test the fallback when the model ignores the format."""
        result = parse_description_response("Just a nice dress.", footer=FOOTER)

        assert result.description == f"Just a nice dress.\n\n{FOOTER}"
        assert result.meta_description == ""

    def test_to_dict(self) -> None:
        """Test the response shape."""
        data = parse_description_response(MODEL_OUTPUT, footer="").to_dict()
        assert data["success"] is True
        assert set(data) == {"success", "description", "metaDescription", "raw"}


class TestGenerateProductDescription:
    """Tests for generate_product_description."""

    async def test_generates_from_images(self) -> None:
        """Test the full generation path."""
        mock_client = AsyncMock()
        mock_client.generate.return_value = MODEL_OUTPUT

        result = await generate_product_description(
            ProductDetails(product_name="Wrap Dress"), [b"img"], ollama_client=mock_client
        )

        assert result.meta_description.startswith("Free People")
        assert mock_client.generate.call_args[1]["images"] == [b"img"]

    async def test_requires_images(self) -> None:
        """Test that at least one image is required."""
        with pytest.raises(DescriptionError, match="At least one image"):
            await generate_product_description(ProductDetails(), [], ollama_client=AsyncMock())

    async def test_image_limit(self) -> None:
        """Test the image count limit."""
        with pytest.raises(DescriptionError, match="At most"):
            await generate_product_description(
                ProductDetails(), [b"x"] * (MAX_IMAGES + 1), ollama_client=AsyncMock()
            )

    async def test_empty_model_response(self) -> None:
        """Test that an empty response is an error."""
        mock_client = AsyncMock()
        mock_client.generate.return_value = ""

        with pytest.raises(DescriptionError, match="Empty response"):
            await generate_product_description(ProductDetails(), [b"img"], ollama_client=mock_client)
