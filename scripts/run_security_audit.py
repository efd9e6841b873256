"""
============================================================================
Capledger v1.0.0
Security Audit - Adversarial Scenario Runner
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Same configuration as ledger_admin.py
Side Effects: DRY_RUN performs dev-inspect calls only; LIVE submits real
    transactions and requires SECURITY_LIVE_CONFIRMED=TRUE

USAGE
-----
    python scripts/run_security_audit.py
    python scripts/run_security_audit.py --scenario unauthorized_mint
    python scripts/run_security_audit.py --simulate --report audit.json
    SECURITY_LIVE_CONFIRMED=TRUE python scripts/run_security_audit.py --mode LIVE

EXIT CODES
----------
    0 every defense held, 1 vulnerability / failure / error,
    2 configuration error

============================================================================
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from capledger.config import NetworkConfig
from capledger.context import LedgerContext
from capledger.errors import LedgerError
from capledger.security.harness import SecurityHarness
from capledger.security.scenarios import DEFAULT_CATALOG, SecurityReport

logger = logging.getLogger("capledger.cli")

# Seed balance for the zero-amount scenario on a simulated ledger
SIMULATED_SEED_TOKENS = "10"


def print_report(report: SecurityReport) -> None:
    """Print formatted report."""
    summary = report.summary()
    print("=" * 60)
    print(f"CAPLEDGER SECURITY AUDIT - {report.mode}")
    print("=" * 60)
    for result in report.results:
        print(f"\n   [{result.classification.value:13}] {result.name}")
        print(f"   expected={result.expected_outcome.value} "
              f"actual={result.actual_outcome.value if result.actual_outcome else '-'}")
        if result.detail:
            print(f"   {result.detail}")
    print("\n" + "-" * 60)
    rate = summary["pass_rate"]
    print(f"   Passed: {summary['passed']}  Failed: {summary['failed']}  "
          f"Vulnerabilities: {summary['vulnerability']}  Errored: {summary['errored']}  "
          f"Skipped: {summary['skipped']}  Informational: {summary['informational']}")
    print(f"   Pass rate: {'n/a' if rate is None else f'{rate:.0%}'}")
    print(f"   OVERALL: {'PASSED' if report.overall_passed else 'FAILED'}")
    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    parser = argparse.ArgumentParser(description="Run the adversarial security scenarios")
    parser.add_argument("--simulate", action="store_true",
                        help="Deploy to a fresh in-memory ledger and audit it")
    parser.add_argument("--mode", choices=("DRY_RUN", "LIVE"), default=None,
                        help="Override SECURITY_EXECUTION_MODE")
    parser.add_argument("--scenario", action="append", default=None,
                        choices=[s.name for s in DEFAULT_CATALOG],
                        help="Run only this scenario (repeatable)")
    parser.add_argument("--report", default=None, help="Write the JSON report to this path")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.simulate:
            ctx = LedgerContext.simulated_context(NetworkConfig.from_environment(validate=False))
            ctx.operations.mint(SIMULATED_SEED_TOKENS, ctx.address).raise_for_status()
        else:
            ctx = LedgerContext.from_config(NetworkConfig.from_environment())
        with ctx:
            report = SecurityHarness.from_context(ctx, mode=args.mode).run(args.scenario)
    except LedgerError as e:
        logger.error(f"[CLI] Security audit aborted | {e}")
        print(json.dumps(e.to_dict(), indent=2, default=str))
        return 2

    print_report(report)
    if args.report:
        Path(args.report).write_text(json.dumps(report.to_dict(), indent=2, default=str))
    return 0 if report.overall_passed else 1


if __name__ == "__main__":
    sys.exit(main())
