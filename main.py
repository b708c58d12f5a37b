#!/usr/bin/env python3
"""
TokenRotor -- operator helpers for configuring the credential service.

Usage:
  python main.py hash-password            # prompts twice, prints a bcrypt hash
  python main.py hash-password --user alice
  python main.py gen-secret               # prints a random SECRET_KEY

The hash goes into AUTH_USERS, a JSON object of username -> bcrypt hash:
  AUTH_USERS='{"alice": "$2b$12$..."}'
"""

import argparse
import getpass
import json
import secrets
import sys

from auth.users import hash_password


def _cmd_hash_password(args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.", file=sys.stderr)
        return 1
    if len(password.encode("utf-8")) > 72:
        print("  [!] Password must be at most 72 bytes.", file=sys.stderr)
        return 1
    if getpass.getpass("Repeat: ") != password:
        print("  [!] Passwords do not match.", file=sys.stderr)
        return 1
    hashed = hash_password(password)
    if args.user:
        print(json.dumps({args.user: hashed}))
    else:
        print(hashed)
    return 0


def _cmd_gen_secret(args: argparse.Namespace) -> int:
    print(secrets.token_hex(args.bytes))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tokenrotor",
        description="Configuration helpers for the TokenRotor credential service.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_hash = sub.add_parser("hash-password", help="Print a bcrypt hash for AUTH_USERS")
    p_hash.add_argument("--user", help="Wrap the hash in a JSON object keyed by this username")
    p_hash.set_defaults(func=_cmd_hash_password)

    p_secret = sub.add_parser("gen-secret", help="Print a random hex SECRET_KEY")
    p_secret.add_argument(
        "--bytes",
        type=int,
        default=32,
        help="Number of random bytes (default: 32, giving 64 hex chars)",
    )
    p_secret.set_defaults(func=_cmd_gen_secret)

    args = parser.parse_args(argv)
    if getattr(args, "bytes", 32) < 16:
        parser.error("--bytes must be at least 16")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
