"""Generative AI endpoint: learning outcomes and thumbnails."""

from __future__ import annotations

import base64

from fastapi import APIRouter
from pydantic import BaseModel

from .errors import AIUnavailable, MissingField, ValidationError
from .services import services

router = APIRouter(tags=["generate"])


class GenerateRequest(BaseModel):
    task: str
    title: str = ""
    category: str = ""
    description: str = ""


@router.post("/generate")
async def generate(body: GenerateRequest):
    """Run one generation task.

    ``outcomes`` answers with a JSON list of strings (always, falling back to
    canned outcomes); ``thumbnail`` answers with ``{"data": <base64>}``.
    """
    if not body.title.strip():
        raise MissingField("title")

    enrichment = services.enrichment

    if body.task == "outcomes":
        return await enrichment.generate_learning_outcomes(body.title, body.category, body.description)

    if body.task == "thumbnail":
        image = await enrichment.generate_thumbnail(body.title, body.description, body.category)
        if image is None:
            raise AIUnavailable(
                "No image generated",
                hint="A category image will be used; you can also upload a thumbnail.",
            )
        return {"data": base64.b64encode(image).decode("ascii")}

    raise ValidationError(f"Invalid task: {body.task!r}", hint="Use 'outcomes' or 'thumbnail'.")
