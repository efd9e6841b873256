"""
============================================================================
Capledger v1.0.0
Ledger Admin - Operator Command Line
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: NETWORK, PACKAGE_ID (or manifest), DEPLOYER_PRIVATE_KEY
Side Effects: Submits signed transactions to the configured ledger

PURPOSE
-------
Run one privileged or ordinary token operation per invocation and print
the result as JSON. Amounts are whole-token decimals unless --base-units
is given.

USAGE
-----
    python scripts/ledger_admin.py status
    python scripts/ledger_admin.py mint 1.5 0xRECIPIENT
    python scripts/ledger_admin.py burn --amount 0.25
    python scripts/ledger_admin.py transfer 0xRECIPIENT 10 --coin-id 0xCOIN
    python scripts/ledger_admin.py transfer-capability admin 0xNEW_OWNER
    python scripts/ledger_admin.py change-admin 0xNEW_ADMIN
    python scripts/ledger_admin.py hand-off-admin 0xNEW_ADMIN --include-treasury
    python scripts/ledger_admin.py pause --reason "Incident 42"
    python scripts/ledger_admin.py unpause

    # Against an in-memory ledger deployed for this invocation
    python scripts/ledger_admin.py --simulate mint 1 0xRECIPIENT

EXIT CODES
----------
    0 operation succeeded, 1 ledger rejected it, 2 configuration or
    input error, 3 submission outcome unknown

============================================================================
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from capledger.config import NetworkConfig
from capledger.context import LedgerContext
from capledger.errors import AmbiguousSubmissionError, LedgerError
from capledger.ledger.objects import CapabilityKind

logger = logging.getLogger("capledger.cli")

TRANSFERABLE_KINDS = {
    "treasury": CapabilityKind.TREASURY,
    "admin": CapabilityKind.ADMIN,
    "upgrade": CapabilityKind.UPGRADE,
}

# Irreversible without the new holder's cooperation
CONFIRM_COMMANDS = ("transfer-capability", "change-admin", "hand-off-admin")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capability-gated token administration"
    )
    parser.add_argument("--simulate", action="store_true",
                        help="Run against a fresh in-memory ledger")
    parser.add_argument("--base-units", action="store_true",
                        help="Amounts are integer base units, not decimal tokens")
    parser.add_argument("--yes", action="store_true",
                        help="Skip the confirmation prompt for ownership changes")
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (default: INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    mint = sub.add_parser("mint", help="Mint tokens to a recipient")
    mint.add_argument("amount")
    mint.add_argument("recipient")

    burn = sub.add_parser("burn", help="Burn a token coin or part of it")
    burn.add_argument("--amount", default=None, help="Default: the whole coin")
    burn.add_argument("--coin-id", default=None)

    transfer = sub.add_parser("transfer", help="secure_transfer tokens")
    transfer.add_argument("recipient")
    transfer.add_argument("amount")
    transfer.add_argument("--coin-id", default=None)

    cap = sub.add_parser("transfer-capability", help="Move an owned capability")
    cap.add_argument("kind", choices=sorted(TRANSFERABLE_KINDS))
    cap.add_argument("new_owner")

    change = sub.add_parser("change-admin", help="Point the AdminRegistry at a new administrator")
    change.add_argument("new_admin")

    handoff = sub.add_parser("hand-off-admin", help="change-admin, then move the AdminCap")
    handoff.add_argument("new_admin")
    handoff.add_argument("--include-treasury", action="store_true",
                         help="Also move the TreasuryCap")

    pause = sub.add_parser("pause", help="Pause token operations")
    pause.add_argument("--reason", required=True)

    sub.add_parser("unpause", help="Resume token operations")
    sub.add_parser("status", help="Show administrator, pause state and supply")
    return parser


def open_context(args: argparse.Namespace) -> LedgerContext:
    if args.simulate:
        config = NetworkConfig.from_environment(validate=False)
        ctx = LedgerContext.simulated_context(config)
        logger.info(f"[CLI] Simulated ledger deployed | admin={ctx.address} | package={ctx.package_id}")
        return ctx
    config = NetworkConfig.from_environment(validate=True, require_signer=True)
    return LedgerContext.from_config(config)


def dispatch(ctx: LedgerContext, args: argparse.Namespace) -> Dict[str, Any]:
    """Run the selected subcommand and return a JSON-ready payload."""
    ops = ctx.operations
    base_units = args.base_units

    if args.command == "status":
        status = ops.status()
        symbol = ctx.config.coin_witness
        display = {"signer_balance": ctx.converter.format_amount(status.signer_balance, symbol)}
        if status.total_supply is not None:
            display["total_supply"] = ctx.converter.format_amount(status.total_supply, symbol)
        return {"succeeded": True, "status": status.to_dict(), "display": display}
    if args.command == "mint":
        result = ops.mint(args.amount, args.recipient, base_units=base_units)
    elif args.command == "burn":
        result = ops.burn(amount=args.amount, coin_id=args.coin_id, base_units=base_units)
    elif args.command == "transfer":
        result = ops.transfer(args.recipient, args.amount, coin_id=args.coin_id, base_units=base_units)
    elif args.command == "transfer-capability":
        result = ops.transfer_capability(TRANSFERABLE_KINDS[args.kind], args.new_owner)
    elif args.command == "change-admin":
        result = ops.change_admin(args.new_admin)
    elif args.command == "hand-off-admin":
        handoff = ops.hand_off_admin(args.new_admin, include_treasury=args.include_treasury)
        return handoff.to_dict()
    elif args.command == "pause":
        result = ops.pause(args.reason)
    else:
        result = ops.unpause()

    payload = result.to_dict()
    payload["succeeded"] = result.succeeded
    return payload


def confirmed(args: argparse.Namespace) -> bool:
    if args.simulate or args.yes or args.command not in CONFIRM_COMMANDS:
        return True
    print("=" * 60)
    print(f"OWNERSHIP CHANGE: {args.command}")
    print("=" * 60)
    answer = input("\n   Type 'CONFIRM' to submit: ")
    return answer == "CONFIRM"


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )

    if not confirmed(args):
        print("\n   Cancelled")
        return 2

    try:
        with open_context(args) as ctx:
            payload = dispatch(ctx, args)
    except AmbiguousSubmissionError as e:
        print(json.dumps({"succeeded": False, **e.to_dict()}, indent=2, default=str))
        return 3
    except LedgerError as e:
        print(json.dumps({"succeeded": False, **e.to_dict()}, indent=2, default=str))
        return 2

    print(json.dumps(payload, indent=2, default=str))
    return 0 if payload.get("succeeded") else 1


if __name__ == "__main__":
    sys.exit(main())
