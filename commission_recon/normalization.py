"""Utilities for reading and normalising source records.

Every ``normalize_*`` helper is lenient: dirty values coming from OCR or
spreadsheet exports collapse to the zero/empty value of their type instead
of raising.
"""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Any, Iterable, List, Mapping

from .models import CounterpartyPayment, InternalContract

LOGGER = logging.getLogger(__name__)

CENT = Decimal("0.01")

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")

TAX_ID_LENGTH = 11

PRODUCT_ALIASES = {
    "CONSIGNADO": "CONSIGNADO",
    "CREDITO CONSIGNADO": "CONSIGNADO",
    "EMPRESTIMO CONSIGNADO": "CONSIGNADO",
    "CONS": "CONSIGNADO",
    "PORTABILIDADE": "PORTABILIDADE",
    "PORTABILIDADE CONSIGNADO": "PORTABILIDADE",
    "PORT": "PORTABILIDADE",
    "REFINANCIAMENTO": "REFIN",
    "REFIN": "REFIN",
    "REFI": "REFIN",
    "CARTAO": "CARTAO",
    "CARTAO CONSIGNADO": "CARTAO",
    "CC": "CARTAO",
    "PESSOAL": "PESSOAL",
    "EMPRESTIMO PESSOAL": "PESSOAL",
    "CREDITO PESSOAL": "PESSOAL",
    "EP": "PESSOAL",
}

_NON_DIGITS = re.compile(r"\D")
_NON_NUMERIC = re.compile(r"[^\d.,\-]")
_SCIENTIFIC = re.compile(r"^[-+]?\d+(?:\.\d+)?[eE][-+]?\d+$")
_WHITESPACE = re.compile(r"\s+")


class NormalizationError(RuntimeError):
    """Raised when a source file cannot be read as a list of records."""


def normalize_tax_id(raw: Any) -> str:
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def is_valid_cpf(raw: Any) -> bool:
    """Check length, repeated digits and both CPF verification digits."""

    digits = normalize_tax_id(raw)
    if len(digits) != TAX_ID_LENGTH or len(set(digits)) == 1:
        return False
    numbers = [int(char) for char in digits]
    for position in (9, 10):
        total = sum(numbers[i] * (position + 1 - i) for i in range(position))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != numbers[position]:
            return False
    return True


def normalize_money(raw: Any) -> Decimal:
    if raw is None or isinstance(raw, bool):
        return Decimal("0.00")
    if isinstance(raw, Decimal):
        number = raw
    elif isinstance(raw, (int, float)):
        number = Decimal(str(raw))
    elif _SCIENTIFIC.match(str(raw).strip()):
        number = Decimal(str(raw).strip())
    else:
        cleaned = _NON_NUMERIC.sub("", str(raw))
        if "," in cleaned and "." in cleaned:
            if cleaned.rfind(",") > cleaned.rfind("."):
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        elif "," in cleaned:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        elif cleaned.count(".") > 1:
            cleaned = cleaned.replace(".", "")
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return Decimal("0.00")
    if not number.is_finite():
        return Decimal("0.00")
    try:
        return number.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More integer digits than the decimal context can hold at cent precision.
        LOGGER.debug("Discarding out-of-range amount %r", raw)
        return Decimal("0.00")


def normalize_contract_id(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip().upper()


def normalize_name(raw: Any) -> str:
    if raw is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(raw))
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE.sub(" ", stripped).strip().upper()


def normalize_product(raw: Any) -> str:
    name = normalize_name(raw)
    return PRODUCT_ALIASES.get(name, name)


def parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    for pattern in DATE_FORMATS:
        try:
            return datetime.strptime(text, pattern).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _canonical_tax_id(raw: Any, *, label: str) -> str:
    digits = normalize_tax_id(raw)
    if digits and len(digits) != TAX_ID_LENGTH:
        LOGGER.debug("Discarding %s %r: expected %d digits", label, raw, TAX_ID_LENGTH)
        return ""
    return digits


def _as_mapping(raw: Mapping[str, Any] | InternalContract | CounterpartyPayment) -> Mapping[str, Any]:
    if is_dataclass(raw) and not isinstance(raw, type):
        return asdict(raw)
    return raw


def _common_fields(row: Mapping[str, Any]) -> dict[str, Any]:
    base_value = normalize_money(row.get("base_value"))
    if base_value < 0:
        LOGGER.debug("Negative base value %s clamped to zero", base_value)
        base_value = Decimal("0.00")
    return {
        "contract_id": normalize_contract_id(row.get("contract_id")),
        "client_name": normalize_name(row.get("client_name")),
        "client_tax_id": _canonical_tax_id(row.get("client_tax_id"), label="client tax id"),
        "counterparty_name": normalize_name(row.get("counterparty_name")),
        "agent_name": normalize_name(row.get("agent_name")),
        "agent_tax_id": _canonical_tax_id(row.get("agent_tax_id"), label="agent tax id"),
        "product_name": normalize_product(row.get("product_name")),
        "base_value": base_value,
        "commission_value": normalize_money(row.get("commission_value")),
        "payment_date": parse_date(row.get("payment_date")),
    }


def normalize_internal(raw: Mapping[str, Any] | InternalContract) -> InternalContract:
    row = _as_mapping(raw)
    return InternalContract(sale_date=parse_date(row.get("sale_date")), **_common_fields(row))


def normalize_payment(raw: Mapping[str, Any] | CounterpartyPayment) -> CounterpartyPayment:
    return CounterpartyPayment(**_common_fields(_as_mapping(raw)))


def normalize_internals(rows: Iterable[Mapping[str, Any] | InternalContract]) -> List[InternalContract]:
    return [normalize_internal(row) for row in rows]


def normalize_payments(rows: Iterable[Mapping[str, Any] | CounterpartyPayment]) -> List[CounterpartyPayment]:
    return [normalize_payment(row) for row in rows]


def load_file(path: Path) -> List[dict[str, Any]]:
    """Read a JSON array of raw records (or an object with a ``records`` key)."""

    if not path.exists():
        raise FileNotFoundError(path)

    with path.open(encoding="utf-8-sig") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise NormalizationError(f"Invalid JSON in {path}: {exc}") from exc

    if isinstance(payload, Mapping):
        payload = payload.get("records")
    if not isinstance(payload, list):
        raise NormalizationError(f"Expected a list of records in {path}")

    rows = []
    for position, row in enumerate(payload, start=1):
        if not isinstance(row, Mapping):
            raise NormalizationError(f"Record {position} in {path} is not an object")
        rows.append(dict(row))
    return rows


def load_sources(internal_path: Path, counterparty_path: Path) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    internal = load_file(internal_path)
    counterparty = load_file(counterparty_path)
    LOGGER.info("Loaded %d internal and %d counterparty records", len(internal), len(counterparty))
    return internal, counterparty
