"""Command-line front-end running one U2F registration or authentication."""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional, TextIO

from . import Client, Mode, U2FError, start


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="u2fserver",
        description="Issue a U2F challenge, then verify the response read from stdin",
    )
    parser.add_argument(
        "-a",
        "--action",
        choices=("register", "authenticate"),
        required=True,
        help="Protocol flow to run",
    )
    parser.add_argument("-o", "--origin", required=True, help="Expected origin")
    parser.add_argument("-i", "--appid", required=True, help="Application identifier")
    parser.add_argument("-c", "--challenge", help="Use this websafe base64 challenge")
    parser.add_argument("-k", "--key-handle", help="Registered key handle (authenticate)")
    parser.add_argument("-p", "--public-key", help="Registered public key (authenticate)")
    parser.add_argument("-d", "--debug", action="store_true", help="Verbose diagnostics")
    args = parser.parse_args(argv)
    if args.action == "authenticate" and not (args.key_handle and args.public_key):
        parser.error("authenticate requires --key-handle and --public-key")
    return args


def run(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    server = start(Mode.DEBUG if args.debug else Mode.PRODUCTION)
    try:
        with server.open() as ctx:
            if args.action == "register":
                request = ctx.registration_challenge(args.origin, args.appid)
            else:
                client = Client(handle=args.key_handle, public_key=args.public_key)
                request = ctx.authentication_challenge(args.origin, args.appid, client)
            message = json.loads(request)
            if args.challenge:
                ctx.set_challenge(args.challenge)
                message["challenge"] = ctx.challenge
            print(json.dumps(message), file=stdout)

            response = stdin.readline().strip()
            if not response:
                print("error: no response received", file=stderr)
                return 1
            if args.action == "register":
                print(ctx.registration_verify(response).to_json(), file=stdout)
            else:
                assertion = ctx.authentication_verify(response)
                print(json.dumps(assertion._asdict()), file=stdout)
    except U2FError as exc:
        print(f"error: {exc.kind.name}: {exc}", file=stderr)
        return 1
    finally:
        server.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return run(args, sys.stdin, sys.stdout, sys.stderr)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
