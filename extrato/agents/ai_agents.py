"""
AI Statement Extraction Agent

DESIGN DECISION: The LLM is used only where the local parsers give up
(scanned images, unknown layouts, free-form text). Its output is treated
as untrusted input:
1. It must be JSON matching a declared response schema
2. Every item is validated by CandidateValidator before review
3. Nothing it returns is ever persisted without user approval

The LLM is a TRANSCRIBER, not an ORACLE. It copies what is on the
statement; it never invents transactions or fills in missing amounts.
"""

import json
from typing import Any, Optional, Union

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, Field, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from extrato.config import GeminiSettings, get_settings
from extrato.models.statement import StatementMetadata


logger = structlog.get_logger(__name__)

_TRANSIENT = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)

EXTRACTION_PROMPT = """Você extrai transações financeiras de extratos bancários e faturas de cartão.

Retorne SOMENTE um objeto JSON no formato:
{"metadata": {"bankName": "...", "limit": 0, "dueDay": 0, "closingDay": 0},
 "transactions": [{"date": "YYYY-MM-DD", "description": "...", "amount": 0.0,
                   "type": "income" | "expense", "category": "..."}]}

Regras:
- amount é sempre positivo; use type para indicar entrada ou saída
- estornos, reembolsos e créditos são "income"
- copie a descrição como aparece no documento, incluindo marcadores de parcela (ex: 03/10)
- não invente transações; se não houver nenhuma, retorne "transactions": []
- omita campos de metadata que não aparecem no documento"""


class AIExtractionError(Exception):
    """The AI service failed or answered with something that is not JSON. Retryable."""
    pass


class AIExtraction(BaseModel):
    """
    Raw AI output, before validation.

    Items are plain dicts; CandidateValidator turns them into candidates.
    """

    items: list[dict[str, Any]] = Field(default_factory=list)
    metadata: StatementMetadata = Field(default_factory=StatementMetadata)
    model_name: Optional[str] = None


def response_schema() -> "genai.protos.Schema":
    """JSON schema the model's answer must follow."""
    Schema, Type = genai.protos.Schema, genai.protos.Type
    transaction = Schema(
        type=Type.OBJECT,
        properties={
            "date": Schema(type=Type.STRING),
            "description": Schema(type=Type.STRING),
            "amount": Schema(type=Type.NUMBER),
            "type": Schema(type=Type.STRING, enum=["income", "expense"]),
            "category": Schema(type=Type.STRING),
        },
        required=["date", "description", "amount", "type"],
    )
    metadata = Schema(
        type=Type.OBJECT,
        properties={
            "bankName": Schema(type=Type.STRING),
            "limit": Schema(type=Type.NUMBER),
            "dueDay": Schema(type=Type.INTEGER),
            "closingDay": Schema(type=Type.INTEGER),
        },
    )
    return Schema(
        type=Type.OBJECT,
        properties={
            "metadata": metadata,
            "transactions": Schema(type=Type.ARRAY, items=transaction),
        },
        required=["transactions"],
    )


def parse_response_text(text: str) -> dict[str, Any]:
    """
    Decode the model's answer.

    Accepts a bare JSON array of transactions as well as the documented
    object.

    Raises:
        AIExtractionError: The text is not JSON of either shape.
    """
    try:
        data = json.loads(text or "{}")
    except json.JSONDecodeError:
        # Some answers wrap the JSON in prose or code fences
        start, end = text.find("{"), text.rfind("}") + 1
        if start < 0 or end <= start:
            raise AIExtractionError("AI response is not JSON")
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            raise AIExtractionError(f"AI response is not JSON: {e}") from e

    if isinstance(data, list):
        return {"transactions": data, "metadata": {}}
    if not isinstance(data, dict):
        raise AIExtractionError("AI response has an unexpected shape")
    return data


def metadata_from_response(raw: Any) -> StatementMetadata:
    """Best-effort metadata: invalid fields are dropped, never fatal."""
    if not isinstance(raw, dict):
        return StatementMetadata()
    try:
        return StatementMetadata.model_validate(raw)
    except ValidationError as e:
        logger.warning("ai_metadata_invalid", error=str(e))
        bank_name = raw.get("bankName") or raw.get("bank_name")
        return StatementMetadata(bank_name=str(bank_name) if bank_name else None)


class StatementExtractionAgent:
    """
    Sends a statement to Gemini and returns the raw transaction items.

    RESPONSIBILITIES:
    - Build the request (text, or document bytes with a mime type)
    - Retry transient service errors
    - Decode the JSON answer

    BOUNDARIES:
    - NEVER validates or persists items (the caller does)
    - NEVER fills in data the model did not return
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
                "response_schema": response_schema(),
            },
        )

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, contents: list) -> str:
        response = await self._model.generate_content_async(contents)
        return response.text

    async def extract(
        self,
        document: Union[str, bytes],
        mime_type: Optional[str] = None,
    ) -> AIExtraction:
        """
        Extract transactions from a document.

        Args:
            document: Statement text, or raw file bytes (PDF, image).
            mime_type: Required when document is bytes.

        Raises:
            AIExtractionError: The service failed or returned garbage.
        """
        if isinstance(document, bytes):
            if not mime_type:
                raise ValueError("mime_type is required for binary documents")
            contents = [EXTRACTION_PROMPT, {"mime_type": mime_type, "data": document}]
        else:
            contents = [f"{EXTRACTION_PROMPT}\n\nTEXTO:\n{document}"]

        try:
            text = await self._generate(contents)
        except google_exceptions.GoogleAPIError as e:
            logger.error("ai_extraction_failed", error=str(e))
            raise AIExtractionError(f"AI service error: {e}") from e
        except ValueError as e:
            # response.text raises ValueError when the answer was blocked
            logger.error("ai_response_blocked", error=str(e))
            raise AIExtractionError(f"AI response unavailable: {e}") from e

        data = parse_response_text(text)
        items = data.get("transactions") or []
        if not isinstance(items, list):
            raise AIExtractionError("AI response 'transactions' is not a list")

        dict_items = [item for item in items if isinstance(item, dict)]
        if len(dict_items) < len(items):
            logger.warning("ai_items_not_objects", dropped=len(items) - len(dict_items))

        extraction = AIExtraction(
            items=dict_items,
            metadata=metadata_from_response(data.get("metadata")),
            model_name=self._settings.model_name,
        )
        logger.info("ai_extraction_completed", items=len(extraction.items))
        return extraction
