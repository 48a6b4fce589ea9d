from typing import Any, Dict, List, Optional
from config import settings
from models.extraction import ExtractedTransaction, ExtractionResult
from prompts.prompt_manager import prompt_manager
from utils.coercion import safe_number, safe_string, parse_kigali_timestamp
import json
import logging

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = ("amount", "balance", "fee", "confidence")
TEXT_FIELDS = (
    "provider",
    "txn_type",
    "currency",
    "counterparty",
    "counterparty_phone_suffix",
    "reference",
    "txn_id",
    "ft_id",
    "fee_currency",
    "wallet",
    "notes",
)


class ExtractionError(Exception):
    """Raised when no provider produced usable output"""


class ExtractionProvider:
    """One model that can turn an extraction prompt into a JSON object"""

    name: str = "provider"

    def extract_raw(self, prompt: str) -> Dict[str, Any]:
        raise NotImplementedError


class AnthropicExtractionProvider(ExtractionProvider):
    def __init__(self, model: str, client=None, max_tokens: int = None):
        self.model = model
        self.name = model
        self.max_tokens = max_tokens or settings.EXTRACTION_MAX_TOKENS
        if client is None:
            from anthropic import Anthropic

            # Fallback to the next provider replaces SDK-level retries
            client = Anthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
                max_retries=0,
            )
        self.client = client

    def extract_raw(self, prompt: str) -> Dict[str, Any]:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0.1,
            messages=[{"role": "user", "content": prompt}],
        )

        if not response.content:
            raise ExtractionError(f"{self.model} returned empty output")

        content = (getattr(response.content[0], "text", None) or "").strip()
        if not content:
            raise ExtractionError(f"{self.model} returned empty output")

        return parse_json_object(content)


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parse model output, tolerating a markdown code fence around the JSON"""
    text = content.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1]) if len(lines) > 2 else text
        text = text.replace("```json", "").replace("```", "").strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Non-JSON output: {e}") from e

    if not isinstance(parsed, dict):
        raise ExtractionError(f"Expected a JSON object, got {type(parsed).__name__}")

    return parsed


def coerce_fields(parsed: Dict[str, Any]) -> ExtractedTransaction:
    """Map untrusted model output onto ExtractedTransaction"""
    values: Dict[str, Any] = {}
    for field in NUMERIC_FIELDS:
        values[field] = safe_number(parsed.get(field))
    for field in TEXT_FIELDS:
        values[field] = safe_string(parsed.get(field))

    # Kept verbatim so a human can re-derive the time later
    raw_time = parsed.get("transaction_time_raw")
    values["transaction_time_raw"] = raw_time if isinstance(raw_time, str) and raw_time.strip() else None
    values["transaction_time"] = parse_kigali_timestamp(values["transaction_time_raw"])

    return ExtractedTransaction(**values)


def build_default_providers(client=None) -> List[ExtractionProvider]:
    """Primary model first, then a distinct fallback model when one is configured"""
    primary = (settings.EXTRACTION_MODEL or "").strip()
    fallback = (settings.EXTRACTION_MODEL_FALLBACK or "").strip()

    providers: List[ExtractionProvider] = []
    if primary:
        providers.append(AnthropicExtractionProvider(primary, client=client))
        client = providers[0].client
    if fallback and fallback != primary:
        providers.append(AnthropicExtractionProvider(fallback, client=client))
    return providers


class TransactionExtractor:
    """Best-effort structured parse of a transaction SMS

    Providers are tried in order until one returns a JSON object.
    """

    def __init__(self, providers: Optional[List[ExtractionProvider]] = None):
        self.providers = providers if providers is not None else build_default_providers()
        logger.info(f"TransactionExtractor initialized with providers: {[p.name for p in self.providers]}")

    def extract(self, sender: Optional[str], body: str) -> ExtractionResult:
        if not self.providers:
            raise ExtractionError("No extraction providers configured")

        prompt = prompt_manager.build_sms_extraction_prompt(sender, body)
        errors = []

        for provider in self.providers:
            try:
                parsed = provider.extract_raw(prompt)
                fields = coerce_fields(parsed)
                logger.info(f"Extraction succeeded with {provider.name}")
                return ExtractionResult(fields=fields, model_used=provider.name, raw=parsed)
            except Exception as e:
                logger.warning(f"Extraction with {provider.name} failed: {e}")
                errors.append(f"{provider.name}: {e}")

        raise ExtractionError("All extraction providers failed. " + " | ".join(errors))
