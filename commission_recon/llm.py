"""LLM-backed explanations for divergent, missing and duplicate records."""
from __future__ import annotations

from dataclasses import dataclass, replace
import json
import logging
import os
from typing import Any, Dict, Iterable, Protocol

from openai import OpenAI

from .models import DivergenceAnnotation, ReconciledContract, ReconStatus

LOGGER = logging.getLogger(__name__)

STATUS_MESSAGES = {
    ReconStatus.NOT_FOUND_IN_COUNTERPARTY: (
        "The counterparty has not paid this commission. Claim it before month-end closing.",
        "high",
    ),
    ReconStatus.NOT_FOUND_INTERNALLY: (
        "The counterparty paid a contract that is not booked internally. Check for missing sales.",
        "high",
    ),
    ReconStatus.DUPLICATE: (
        "Several contracts point at the same payment. Rule out a double payment or a keying error.",
        "medium",
    ),
    ReconStatus.DIVERGENT: (
        "Amounts or commission rates disagree. Review the contracted rate with the counterparty.",
        "medium",
    ),
}

_VALID_SEVERITIES = {"low", "medium", "high"}

_JSON_SCHEMA = {
    "name": "reconciliation_divergence_annotation",
    "schema": {
        "type": "object",
        "properties": {
            "severity": {
                "type": "string",
                "description": "Operational priority: low, medium or high.",
            },
            "summary": {
                "type": "string",
                "description": "Human readable explanation (1-2 sentences).",
            },
            "actions": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Ordered remediation steps for the finance team.",
            },
            "confidence": {
                "type": "number",
                "description": "Confidence score between 0 and 1.",
            },
            "needs_escalation": {
                "type": "boolean",
                "description": "Whether a supervisor must approve the follow-up.",
            },
        },
        "required": ["severity", "summary"],
        "additionalProperties": False,
    },
}


class StructuredClient(Protocol):
    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any]) -> Dict[str, Any] | None:
        ...


@dataclass(frozen=True)
class LLMConfig:
    """Runtime configuration for the LLM integration."""

    model: str
    temperature: float
    api_key: str | None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        model = os.getenv("RECON_OPENAI_MODEL", "gpt-4o-mini")
        temperature = float(os.getenv("RECON_OPENAI_TEMPERATURE", "0.2"))
        api_key = os.getenv("RECON_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
        return cls(model=model, temperature=temperature, api_key=api_key)


class OpenAIStructuredClient:
    """Thin adapter turning a JSON-schema request into a parsed dictionary."""

    def __init__(self, client: Any, config: LLMConfig) -> None:
        self._client = client
        self._config = config

    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any]) -> Dict[str, Any] | None:
        response = self._client.responses.create(
            model=self._config.model,
            temperature=self._config.temperature,
            input=messages,
            text={"format": {"type": "json_schema", "name": schema["name"], "schema": schema["schema"]}},
        )
        return _extract_json_payload(response)


def _load_client(config: LLMConfig) -> StructuredClient | None:
    if not config.api_key:
        return None
    return OpenAIStructuredClient(OpenAI(api_key=config.api_key), config)


def _compose_user_payload(record: ReconciledContract) -> dict[str, Any]:
    payload = record.as_json()
    payload.pop("annotation", None)
    return payload


def _fallback_annotation(record: ReconciledContract) -> DivergenceAnnotation:
    message, severity = STATUS_MESSAGES.get(
        record.status,
        ("Unexpected reconciliation outcome. Escalate to the finance lead.", "medium"),
    )
    explanation = f"{message} (contract {record.contract_id or 'n/a'} / {record.counterparty_name or 'n/a'})."
    return DivergenceAnnotation(explanation=explanation, severity=severity, source="rule")


class DivergenceAnnotationService:
    """LLM-powered agent that explains reconciliation outcomes."""

    def __init__(self, config: LLMConfig, client: StructuredClient | None) -> None:
        self._config = config
        self._client = client

    @classmethod
    def from_env(cls) -> "DivergenceAnnotationService":
        config = LLMConfig.from_env()
        return cls(config=config, client=_load_client(config))

    def annotate(self, record: ReconciledContract) -> DivergenceAnnotation:
        if self._client is None:
            return _fallback_annotation(record)

        messages = [
            {
                "role": "system",
                "content": "You are a senior finance analyst specialised in commission reconciliations.",
            },
            {
                "role": "user",
                "content": [
                    {
                        "type": "input_text",
                        "text": (
                            "Explain the reconciliation outcome and propose follow-up actions. "
                            "Return JSON that aligns with the provided schema."
                        ),
                    },
                    {"type": "input_text", "text": json.dumps(_compose_user_payload(record), indent=2)},
                ],
            },
        ]

        try:
            llm_payload = self._client.request(messages=messages, schema=_JSON_SCHEMA)
        except Exception as exc:  # pragma: no cover - network/runtime failure
            LOGGER.warning("LLM annotation failed; using rule-based fallback: %s", exc)
            return _fallback_annotation(record)

        if not llm_payload:
            return _fallback_annotation(record)

        severity = str(llm_payload.get("severity", "")).lower()
        summary = llm_payload.get("summary")
        if severity not in _VALID_SEVERITIES or not summary:
            return _fallback_annotation(record)

        actions = llm_payload.get("actions") or []
        ordered_actions = [a for a in actions if isinstance(a, str)] if isinstance(actions, list) else []
        confidence = llm_payload.get("confidence")

        explanation = summary.strip()
        if llm_payload.get("needs_escalation"):
            explanation = f"{explanation} Escalate for supervisor sign-off."

        return DivergenceAnnotation(
            explanation=explanation,
            severity=severity,
            actions=tuple(ordered_actions),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
            needs_escalation=bool(llm_payload.get("needs_escalation")),
            source="openai",
            raw_response=llm_payload,
        )


def _block_text(block: Any) -> str | None:
    if isinstance(block, dict):
        return block.get("text")
    return getattr(block, "text", None)


def _extract_json_payload(response: Any) -> Dict[str, Any] | None:
    """Normalise the OpenAI client response into a Python dictionary."""

    outputs = getattr(response, "output", None) or getattr(response, "outputs", None)
    if not outputs:
        # Older SDKs use `choices`
        outputs = getattr(response, "choices", None)
    if not outputs:
        return None

    texts = []
    for block in outputs:
        content = getattr(block, "content", None)
        if content is None and hasattr(block, "message"):
            content = getattr(block.message, "content", None)
        if isinstance(content, list):
            texts.extend(_block_text(item) for item in content)
        elif isinstance(content, str):
            texts.append(content)
        else:
            texts.append(_block_text(block))

    for text in texts:
        if not text:
            continue
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload

    LOGGER.warning("LLM response could not be parsed as JSON. Falling back to rules.")
    return None


_SERVICE: DivergenceAnnotationService | None = None


def _service() -> DivergenceAnnotationService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = DivergenceAnnotationService.from_env()
    return _SERVICE


def set_structured_client_for_testing(client: StructuredClient | None) -> None:
    """Swap the structured client used by :func:`annotate_record`; ``None`` resets it."""

    global _SERVICE
    _SERVICE = None if client is None else DivergenceAnnotationService(LLMConfig.from_env(), client)


def annotate_record(record: ReconciledContract) -> DivergenceAnnotation:
    """Return an explanation, severity and metadata for a reconciliation outcome."""

    return _service().annotate(record)


def annotate_records(records: Iterable[ReconciledContract]) -> list[ReconciledContract]:
    return [
        record if record.status is ReconStatus.OK else replace(record, annotation=annotate_record(record))
        for record in records
    ]
