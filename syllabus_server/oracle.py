"""
The extraction oracle: a single prompt/response call to a generative model.

The adapter only depends on the small ``ExtractionOracle`` protocol, so tests
and alternative providers can stand in for the OpenAI implementation.
"""
from __future__ import annotations

import base64
import logging
import typing as t

from openai import OpenAI

from services.shared.config import Settings

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class ExtractionOracle(t.Protocol):
    """Anything that turns a prompt plus a document into raw model text."""

    def complete(
        self,
        prompt: str,
        *,
        text: t.Optional[str] = None,
        pdf_bytes: t.Optional[bytes] = None,
        filename: t.Optional[str] = None,
    ) -> str:
        ...


def _pdf_content_part(pdf_bytes: bytes, filename: t.Optional[str]) -> dict[str, t.Any]:
    encoded = base64.b64encode(pdf_bytes).decode("utf-8")
    return {
        "type": "file",
        "file": {
            "filename": filename or "syllabus.pdf",
            "file_data": f"data:{PDF_MIME_TYPE};base64,{encoded}",
        },
    }


class OpenAIOracle:
    """Oracle backed by the OpenAI chat completions API."""

    def __init__(self, client: OpenAI, model: str = "gpt-5") -> None:
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIOracle":
        if not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set.")
        # Retries happen in SyllabusExtractor only.
        client = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.oracle_timeout,
            max_retries=0,
        )
        return cls(client, model=settings.openai_model)

    def complete(
        self,
        prompt: str,
        *,
        text: t.Optional[str] = None,
        pdf_bytes: t.Optional[bytes] = None,
        filename: t.Optional[str] = None,
    ) -> str:
        if pdf_bytes is not None:
            user_content: t.Any = [
                _pdf_content_part(pdf_bytes, filename),
                {"type": "text", "text": "Extract the syllabus information from the attached PDF as JSON."},
            ]
        else:
            user_content = f"Here's the syllabus text:\n{text or ''}"

        logger.debug("Calling %s (pdf=%s)", self.model, pdf_bytes is not None)
        completion = self.client.chat.completions.create(
            model=self.model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": prompt},
                {"role": "user", "content": user_content},
            ],
        )
        return completion.choices[0].message.content or ""
