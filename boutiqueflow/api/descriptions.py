"""FastAPI routes for generating product descriptions from photos."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from boutiqueflow.services.descriptions import (
    MAX_IMAGES,
    DescriptionError,
    OllamaError,
    ProductDetails,
    generate_product_description,
)

logger = logging.getLogger(__name__)

# Maximum image size: 10MB
MAX_IMAGE_SIZE = 10 * 1024 * 1024

router = APIRouter(prefix="/descriptions", tags=["descriptions"])


@router.post("/generate")
async def generate_description(
    images: Annotated[list[UploadFile], File(description="Product photos (1-10)")],
    product_name: Annotated[str, Form()] = "",
    vendor: Annotated[str, Form()] = "",
    color: Annotated[str, Form()] = "",
    category: Annotated[str, Form()] = "",
    vendor_description: Annotated[str, Form()] = "",
) -> dict[str, Any]:
    """Write a product description and meta description from photos.

    Returns:
        success, description (with the store contact footer), metaDescription
        and the raw model output.
    """
    if len(images) > MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} images are allowed")

    image_bytes = []
    for image in images:
        if image.content_type and not image.content_type.startswith("image/"):
            raise HTTPException(
                status_code=400,
                detail=f"'{image.filename}' is not an image",
            )
        content = await image.read()
        if len(content) > MAX_IMAGE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"'{image.filename}' exceeds the {MAX_IMAGE_SIZE // (1024 * 1024)}MB limit",
            )
        image_bytes.append(content)

    details = ProductDetails(
        product_name=product_name,
        vendor=vendor,
        color=color,
        category=category,
        vendor_description=vendor_description,
    )

    try:
        result = await generate_product_description(details, image_bytes)
    except DescriptionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except OllamaError as e:
        logger.error("Description generation failed: %s", e)
        raise HTTPException(status_code=503, detail=f"Description model unavailable: {e}") from e

    return result.to_dict()
