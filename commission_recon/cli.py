from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .config import ConfigurationError, ReconciliationConfig
from .pipeline import run_reconciliation

CONFIG_FLAGS = {
    "value_match_tolerance": "Base value tolerance for client tax id / client name matches.",
    "agent_match_tolerance": "Base value tolerance for agent tax id matches.",
    "divergence_tolerance": "Amount difference above which a matched pair is divergent.",
    "rate_arithmetic_tolerance": "Allowed gap between stored and recomputed commission.",
    "rate_mismatch_tolerance": "Allowed gap, in percentage points, between both sides' rates.",
    "payment_window_days": "Days a payment may fall before or after the expected date.",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Internal contracts vs counterparty statement commission reconciliation")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Execute the reconciliation workflow")
    run_parser.add_argument(
        "--internal-file",
        type=Path,
        default=Path("data/internal_contracts.json"),
        help="Path to the JSON file with internal contracts.",
    )
    run_parser.add_argument(
        "--counterparty-file",
        type=Path,
        default=Path("data/counterparty_statement.json"),
        help="Path to the JSON file with the counterparty statement lines.",
    )
    run_parser.add_argument(
        "--out-dir",
        type=Path,
        default=Path("out"),
        help="Directory that will receive the reconciliation artefacts.",
    )
    for name, help_text in CONFIG_FLAGS.items():
        run_parser.add_argument(f"--{name.replace('_', '-')}", dest=name, default=None, help=help_text)
    run_parser.add_argument(
        "--rate-band",
        nargs=2,
        metavar=("LOW", "HIGH"),
        default=None,
        help="Plausible commission rate band in percent.",
    )
    run_parser.add_argument(
        "--annotate",
        action="store_true",
        help="Attach OpenAI (or rule-based) explanations to every non-reconciled record.",
    )
    run_parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )

    return parser


def _config_from_args(args: argparse.Namespace) -> ReconciliationConfig:
    overrides = {
        name: getattr(args, name) for name in CONFIG_FLAGS if getattr(args, name) is not None
    }
    if args.rate_band is not None:
        overrides["plausible_rate_band"] = tuple(args.rate_band)
    return ReconciliationConfig.from_env().with_overrides(**overrides)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        try:
            config = _config_from_args(args)
        except ConfigurationError as exc:
            parser.error(str(exc))
        run_reconciliation(
            internal_path=args.internal_file,
            counterparty_path=args.counterparty_file,
            out_dir=args.out_dir,
            config=config,
            annotate=args.annotate,
        )
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    raise SystemExit(main())
