"""Delegation CLI — ask relayers for a quote and optionally sign it.

    metatx-client quote --contract 0x... --function transfer \\
        --arg '"0xabc..."' --arg 100 --account 0x...
    metatx-client sign --contract 0x... --function transfer --arg ...

Output is a single JSON document on stdout; logs go to stderr.
Exit status: 0 on success, 1 when no quote / no signature was obtained,
2 on usage errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from config.settings import settings
from core.engine import DelegationEngine
from core.logger import get_logger, setup_logging
from data.backend_client import BackendClient
from data.backend_directory import BackendDirectory
from models.state import DelegationState
from web3_infra.signer import WalletSigner

log = get_logger("cli.request_delegation")


def _parse_arg(raw: str) -> Any:
    """Function arguments are JSON; bare words fall back to strings."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _state_summary(state: DelegationState) -> dict[str, Any]:
    approved = state.approved_delegation_request
    signature = state.delegation_signature
    return {
        "approvedDelegationRequest": (
            approved.model_dump(by_alias=True, mode="json") if approved else None
        ),
        "backendWarningMessage": state.backend_warning_message,
        "globalInfoMessage": state.global_info_message or None,
        "warning": state.warning_message_read_only or None,
        "signature": signature.model_dump(by_alias=True, mode="json") if signature else None,
    }


async def _run(args: argparse.Namespace) -> int:
    backends_file = args.backends or settings.BACKENDS_FILE
    if not backends_file:
        print("error: no backends file (use --backends or BACKENDS_FILE)", file=sys.stderr)
        return 2
    directory = BackendDirectory.from_file(backends_file)

    signer: WalletSigner | None = None
    private_key = args.private_key or settings.SIGNER_PRIVATE_KEY
    if args.command == "sign":
        if not private_key:
            print("error: signing requires SIGNER_PRIVATE_KEY", file=sys.stderr)
            return 2
        signer = WalletSigner(private_key, max_workers=settings.SIGNER_MAX_WORKERS)
        signer.start()

    account = args.account or (signer.address if signer else None)
    if not account:
        print("error: --account is required without a signing key", file=sys.stderr)
        return 2

    try:
        async with BackendClient(timeout=args.timeout) as client:
            async with DelegationEngine(
                transport=client, descriptors=directory, signer=signer,
            ) as engine:
                engine.store.set(
                    reason="cli",
                    target_network=args.network,
                    current_ethereum_account=account,
                    contract_address=args.contract,
                    function_name=args.function,
                    function_arguments=[_parse_arg(a) for a in args.arg],
                )
                await asyncio.wait_for(engine.wait_idle(), timeout=settings.NEGOTIATION_TIMEOUT_SECONDS)

                state = engine.store.state
                if state.approved_delegation_request is None:
                    print(json.dumps(_state_summary(state), indent=2))
                    return 1

                if args.command == "sign":
                    engine.store.set(reason="cli", delegation_confirmation_request_pending=True)
                    await asyncio.wait_for(
                        engine.wait_idle(), timeout=settings.NEGOTIATION_TIMEOUT_SECONDS,
                    )
                    state = engine.store.state
                    print(json.dumps(_state_summary(state), indent=2))
                    return 0 if state.delegation_signature is not None else 1

                print(json.dumps(_state_summary(state), indent=2))
                return 0
    finally:
        if signer is not None:
            signer.shutdown()


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Request a delegated (meta-transaction) contract call from relayers",
        prog="metatx-client",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("quote", "Fetch the cheapest valid quote"),
        ("sign", "Fetch the cheapest quote and sign it"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--contract", required=True, help="Target contract address")
        sub.add_argument("--function", required=True, help="Contract function name")
        sub.add_argument(
            "--arg",
            action="append",
            default=[],
            help="Function argument as JSON (repeatable, in order)",
        )
        sub.add_argument("--account", default=None, help="Signer account address")
        sub.add_argument("--backends", default=None, help="JSON file of backend descriptors")
        sub.add_argument("--network", default=settings.TARGET_NETWORK, help="Target network name")
        sub.add_argument(
            "--timeout",
            type=float,
            default=settings.BACKEND_REQUEST_TIMEOUT_SECONDS,
            help="Per-backend request timeout in seconds",
        )
        sub.add_argument(
            "--private-key",
            default=None,
            help="Signing key (prefer SIGNER_PRIVATE_KEY in the environment)",
        )

    return parser


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(2)

    setup_logging(level=args.log_level)
    try:
        code = asyncio.run(_run(args))
    except asyncio.TimeoutError:
        log.error("cli.timeout", timeout_s=settings.NEGOTIATION_TIMEOUT_SECONDS)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
