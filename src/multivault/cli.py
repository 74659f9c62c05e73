"""Command-line interface.

Runs against simulated collaborators unless a relayer is configured:

    python -m multivault chains
    python -m multivault validate 1 9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin
    python -m multivault sync-status --user-agent "Mozilla/5.0 (Windows NT 10.0)"
    python -m multivault check-limit --limit 1000 --spent 800 --amount 300
    python -m multivault demo
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timedelta, timezone

from multivault.chains import (
    BASE_SEPOLIA,
    OPTIMISM_SEPOLIA,
    ChainFamily,
    get_all_chains,
    get_chain,
    get_chains_by_family,
)
from multivault.classifier import address_hint, validate_address
from multivault.config import get_settings
from multivault.dispatch.models import TransferIntent
from multivault.errors import UnknownChainError, WalletError
from multivault.factory import create_session, create_store
from multivault.spending.guard import SpendingLimitsSnapshot, evaluate, percentage_used
from multivault.sync.heuristic import PlatformSignals
from multivault.sync.scheduler import SyncRiskScheduler, SyncUserChoice

logger = logging.getLogger(__name__)


def cmd_chains(args) -> int:
    chains = get_chains_by_family(ChainFamily(args.family)) if args.family else get_all_chains()
    for chain in chains:
        hub = " (hub)" if chain.is_hub else ""
        evm = f" [chain id {chain.native_chain_id}]" if chain.is_evm else ""
        print(f"{chain.id:>6}  {chain.family.value:<9} {chain.name}{hub}{evm}")
    return 0


def cmd_config(args) -> int:
    print(json.dumps(get_settings().get_safe_dict(), indent=2))
    return 0


def cmd_validate(args) -> int:
    try:
        chain = get_chain(args.chain_id)
    except UnknownChainError as e:
        print(f"Error: {e}")
        return 2

    if validate_address(chain.family, args.address):
        print(f"Valid {chain.family.value} address for {chain.name}")
        return 0
    print(address_hint(chain.family))
    return 1


def cmd_sync_status(args) -> int:
    settings = get_settings()
    signals = PlatformSignals(
        user_agent=args.user_agent or "",
        authenticator_attachment=args.attachment,
    )
    scheduler = SyncRiskScheduler(
        create_store(settings),
        signals,
        reminder_interval=timedelta(days=settings.sync_reminder_interval_days),
    )

    if args.confirm:
        scheduler.confirm(SyncUserChoice(args.confirm))
    if args.dismiss:
        scheduler.dismiss_reminder()

    status = scheduler.status()
    print(f"Platform:        {scheduler.platform_name()}")
    print(f"Sync heuristic:  {status.heuristic.value}")
    print(f"User choice:     {status.user_choice.value if status.user_choice else '(not confirmed)'}")
    print(f"Risk level:      {scheduler.risk_level().value}")
    print(f"Show banner:     {scheduler.should_show_banner()}")
    print(f"Weekly reminder: {scheduler.should_show_weekly_reminder()}")

    if scheduler.should_show_banner():
        instructions = scheduler.instructions()
        print(f"\nHow to sync on {instructions.platform}:")
        for i, step in enumerate(instructions.steps, start=1):
            print(f"  {i}. {step}")
        if instructions.note:
            print(f"  Note: {instructions.note}")
    return 0


def cmd_check_limit(args) -> int:
    now = datetime.now(timezone.utc)
    snapshot = SpendingLimitsSnapshot(
        daily_limit=args.limit,
        daily_spent=args.spent,
        daily_remaining=max(0, args.limit - args.spent),
        day_reset_time=now + timedelta(hours=args.reset_hours),
        transaction_limit=0,
        is_paused=args.paused,
        chain_id=args.chain_id,
    )

    try:
        result = evaluate(args.amount, snapshot, now)
    except WalletError as e:
        print(f"Error: {e}")
        return 2

    print(f"Used today: {percentage_used(snapshot)}%")
    print(result.message)
    for suggestion in result.suggestions:
        print(f"  - {suggestion.action.value}: {suggestion.label}")
    return 1 if result.blocked else 0


async def run_demo() -> int:
    """Register, deploy vaults, send locally and bridge, all simulated."""
    session = create_session(persistent=False)

    identity = await session.register("demo", "Demo User")
    print(f"Registered identity {identity.short_id}")
    for view in session.vault_view():
        print(f"  {view.chain_name:<18} {view.state.value:<15} {view.address}")

    base_vault = session.identity_manager.vault_address(BASE_SEPOLIA)
    op_vault = session.identity_manager.vault_address(OPTIMISM_SEPOLIA)
    recipient = "0x" + "ab" * 20

    plan = session.plan_transfer(
        TransferIntent(BASE_SEPOLIA, BASE_SEPOLIA, "ETH", recipient, "1000")
    )
    outcome = await session.execute_transfer(plan)
    print(f"\nSame-chain send: {outcome.receipt.tx_hash}")

    plan = session.plan_transfer(
        TransferIntent(BASE_SEPOLIA, OPTIMISM_SEPOLIA, "ETH", op_vault, "500")
    )
    print(f"\nBridging to own vault on Optimism (self-bridge: {plan.is_self_bridge})")

    async def show_progress():
        async for state in session.bridge_updates():
            print(f"  [{state.step}/{state.total_steps}] {state.message}")

    # let the bridge start so the subscription follows it
    execute = asyncio.ensure_future(session.execute_transfer(plan))
    await asyncio.sleep(0)
    await asyncio.gather(show_progress(), execute)

    for result in session.bridge_results():
        print(f"Bridge {result.result_id[:8]}: {result.status.value} tx={result.tx_hash}")

    print(f"\nSource vault {base_vault} balances refreshed")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="multivault", description="Multi-chain passkey vault orchestrator"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("chains", help="List supported chains")
    p.add_argument("--family", choices=[f.value for f in ChainFamily], help="Only list this family")
    sub.add_parser("config", help="Show settings (secrets redacted)")

    p = sub.add_parser("validate", help="Validate a recipient address for a chain")
    p.add_argument("chain_id", type=int, help="Wormhole chain id")
    p.add_argument("address")

    p = sub.add_parser("sync-status", help="Show passkey sync risk and reminder flags")
    p.add_argument("--user-agent", default="", help="Browser user agent string")
    p.add_argument(
        "--attachment",
        choices=["platform", "cross-platform"],
        help="Authenticator attachment of the passkey",
    )
    p.add_argument("--confirm", choices=[c.value for c in SyncUserChoice])
    p.add_argument("--dismiss", action="store_true", help="Dismiss the weekly reminder")

    p = sub.add_parser("check-limit", help="Evaluate a spend against a daily limit")
    p.add_argument("--limit", type=int, required=True, help="Daily limit (0 = unlimited)")
    p.add_argument("--spent", type=int, default=0)
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--paused", action="store_true")
    p.add_argument("--reset-hours", type=float, default=12.0)
    p.add_argument("--chain-id", type=int, default=BASE_SEPOLIA)

    sub.add_parser("demo", help="Run an end-to-end simulated session")

    args = parser.parse_args(argv)

    settings = get_settings()
    log_level = logging.DEBUG if (args.debug or settings.debug) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    handlers = {
        "chains": cmd_chains,
        "config": cmd_config,
        "validate": cmd_validate,
        "sync-status": cmd_sync_status,
        "check-limit": cmd_check_limit,
    }

    try:
        if args.command == "demo":
            return asyncio.run(run_demo())
        return handlers[args.command](args)
    except WalletError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
