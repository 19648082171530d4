import json
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from commission_recon import llm
from commission_recon.normalization import normalize_internal, normalize_payment


@pytest.fixture(autouse=True)
def stubbed_llm_client():
    """Provide deterministic LLM outputs for tests without network access."""

    class _StubClient:
        _SEVERITY_MAP = {
            "NOT_FOUND_IN_COUNTERPARTY": "high",
            "NOT_FOUND_INTERNALLY": "high",
            "DUPLICATE": "medium",
            "DIVERGENT": "low",
        }

        _SUMMARY_MAP = {
            "NOT_FOUND_IN_COUNTERPARTY": "Counterparty has not paid this commission; claim it.",
            "NOT_FOUND_INTERNALLY": "Payment has no internal contract; check the sales ledger.",
            "DUPLICATE": "Payment is shared by several contracts; rule out a double payment.",
            "DIVERGENT": "Commission differs from the contracted terms; review the rate.",
        }

        def request(self, *, messages, schema):  # type: ignore[override]
            if schema.get("name") != "reconciliation_divergence_annotation":
                raise AssertionError(f"Unexpected schema requested: {schema.get('name')!r}")
            payload = self._extract_payload(messages)
            status = payload.get("status", "")
            return {
                "severity": self._SEVERITY_MAP.get(status, "medium"),
                "summary": self._SUMMARY_MAP.get(status, "Investigate reconciliation data quality issues."),
                "actions": ["Review automated reconciliation output"],
                "confidence": 0.5,
                "needs_escalation": status == "NOT_FOUND_IN_COUNTERPARTY",
            }

        def _extract_payload(self, messages):
            for block in reversed(messages):
                content = block.get("content")
                if not isinstance(content, list):
                    continue
                for item in reversed(content):
                    if not isinstance(item, dict):
                        continue
                    if item.get("type") not in {"text", "input_text"}:
                        continue
                    try:
                        return json.loads(item.get("text", ""))
                    except json.JSONDecodeError:
                        continue
            return {}

    llm.set_structured_client_for_testing(_StubClient())
    yield
    llm.set_structured_client_for_testing(None)


@pytest.fixture
def make_internal():
    def factory(**overrides):
        row = {
            "contract_id": "C1",
            "client_name": "Maria da Silva",
            "client_tax_id": "529.982.247-25",
            "counterparty_name": "Banco Alfa",
            "agent_name": "Joao Souza",
            "agent_tax_id": "111.444.777-35",
            "product_name": "Consignado",
            "base_value": Decimal("10000.00"),
            "commission_value": Decimal("350.00"),
            "sale_date": "2024-03-01",
        }
        row.update(overrides)
        return normalize_internal(row)

    return factory


@pytest.fixture
def make_payment():
    def factory(**overrides):
        row = {
            "contract_id": "C1",
            "client_name": "Maria da Silva",
            "client_tax_id": "529.982.247-25",
            "counterparty_name": "Banco Alfa",
            "agent_name": "Joao Souza",
            "agent_tax_id": "111.444.777-35",
            "product_name": "Consignado",
            "base_value": Decimal("10000.00"),
            "commission_value": Decimal("350.00"),
            "payment_date": "2024-03-15",
        }
        row.update(overrides)
        return normalize_payment(row)

    return factory
