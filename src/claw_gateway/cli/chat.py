from __future__ import annotations

import argparse
import sys

from claw_gateway.llm.client import ProviderGateway
from claw_gateway.llm.errors import ChatError
from claw_gateway.llm.models import GatewaySettings
from claw_gateway.llm.token_store import FileConfigStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Send one message through the gateway using a stored runtime config."
    )
    parser.add_argument("message", nargs="?", default=None, help="Message text (default: read stdin).")
    parser.add_argument("--profile", default="default", help="Config profile key.")
    parser.add_argument("--config-path", default=None, help="Override config store path.")
    parser.add_argument("--provider", default=None, help="Override the stored provider.")
    parser.add_argument("--model", default=None, help="Override the stored model.")
    return parser


def run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    message = args.message if args.message is not None else sys.stdin.read()
    if not message.strip():
        print("message is empty", file=sys.stderr)
        return 2

    config = FileConfigStore(args.config_path).load_config(args.profile)
    overrides = {
        key: value
        for key, value in (("provider", args.provider), ("model", args.model))
        if value
    }
    if overrides:
        config = config.model_copy(update=overrides)

    gateway = ProviderGateway(settings=GatewaySettings.from_env())
    try:
        output = gateway.send_message(message, config)
    except ChatError as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    print(output)
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
