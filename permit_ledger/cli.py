"""
Permit Ledger - Command Line Interface

Usage:
    permit-ledger keygen                       Generate an account key (seed, pub key, account id)
    permit-ledger account-id --pub-key HEX     Account identity bound to a public key
    permit-ledger sign-permit --seed-hex HEX --name NAME --contract ID --network ID
                              [--permission calculation_history ...]
                                               Sign a query permit offline and print it as JSON
    permit-ledger serve [--host H] [--port P]  Run the HTTP server
"""

import argparse
import json
import logging
import os
import secrets
import sys
from typing import List, Optional

from .crypto import Ed25519KeyPair, derive_account_id
from .permits import PermitPermission, PermitSigner

logger = logging.getLogger("permit_ledger")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )
    logger.setLevel(level)


def cmd_keygen(args) -> int:
    seed = secrets.token_bytes(32)
    kp = Ed25519KeyPair.from_seed(seed)
    print(json.dumps({
        "seed_hex": seed.hex(),
        "pub_key": kp.public_key_hex,
        "account_id": kp.account_id,
    }, indent=2))
    return 0


def cmd_account_id(args) -> int:
    try:
        kp = Ed25519KeyPair.from_public_key(args.pub_key)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    print(derive_account_id(kp.public_key_bytes))
    return 0


def cmd_sign_permit(args) -> int:
    seed_hex = args.seed_hex or os.getenv("PERMIT_LEDGER_SEED_HEX", "")
    try:
        kp = Ed25519KeyPair.from_seed(bytes.fromhex(seed_hex.strip()))
    except ValueError as e:
        print(f"ERROR: invalid seed: {e}", file=sys.stderr)
        return 2
    permissions = args.permission or [PermitPermission.CALCULATION_HISTORY.value]
    permit = PermitSigner(kp).sign_permit(
        permit_name=args.name,
        allowed_contracts=args.contract,
        network_id=args.network,
        permissions=permissions,
    )
    print(json.dumps(permit.to_dict(), indent=2))
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    from .server import create_app

    logger.info("Starting Permit Ledger on %s:%s", args.host, args.port)
    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permit-ledger",
        description="Permit Ledger - calculation ledger with permit-gated reads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    PERMIT_LEDGER_CONTRACT_ID   Contract identity permits must list
    PERMIT_LEDGER_NETWORK_ID    Network identity permits must match
    PERMIT_LEDGER_DB_PATH       SQLite path (default: in-memory)
    PERMIT_LEDGER_SEED_HEX      Default seed for sign-permit
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keygen", help="Generate an account key")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("account-id", help="Account identity for a public key")
    p.add_argument("--pub-key", required=True, help="Hex Ed25519 public key")
    p.set_defaults(func=cmd_account_id)

    p = sub.add_parser("sign-permit", help="Sign a query permit offline")
    p.add_argument("--seed-hex", default=None, help="32-byte hex seed (or PERMIT_LEDGER_SEED_HEX)")
    p.add_argument("--name", required=True, help="Permit name (used for revocation)")
    p.add_argument("--contract", action="append", required=True, help="Allowed contract identity (repeatable)")
    p.add_argument("--network", required=True, help="Network identity")
    p.add_argument("--permission", action="append", default=None, help="Granted permission (repeatable)")
    p.set_defaults(func=cmd_sign_permit)

    p = sub.add_parser("serve", help="Run the HTTP server")
    p.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main() or 0)
