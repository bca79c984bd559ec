from __future__ import annotations

import argparse
import json
import webbrowser
from datetime import datetime, timezone
from pathlib import Path

from claw_gateway.hooks.security import mask_secret
from claw_gateway.llm.errors import OAuthError
from claw_gateway.llm.models import DeviceAuthSession, GatewaySettings, OAuthTokenResult
from claw_gateway.llm.oauth_device import DEVICE_FLOW_PROVIDERS, DeviceFlowEngine
from claw_gateway.llm.token_store import FileConfigStore


def _describe_expiry(expires_at_ms: int) -> str:
    if expires_at_ms <= 0:
        return "never"
    return datetime.fromtimestamp(expires_at_ms / 1000, tz=timezone.utc).isoformat()


def _print_instructions(session: DeviceAuthSession) -> None:
    print("To continue, follow these steps:")
    print(f"  1. Open this URL in your browser: {session.verification_url}")
    print(f"  2. Enter this code: {session.user_code}")
    print(
        f"Polling every {session.interval_seconds}s (plus buffer). Press Ctrl+C to cancel."
    )


def _write_status_file(
    *,
    path: str,
    provider: str,
    profile: str,
    config_path: Path,
    result: OAuthTokenResult,
) -> None:
    status_payload = {
        "provider": provider,
        "profile": profile,
        "config_path": str(config_path),
        "expires_at": _describe_expiry(result.expires_at_ms),
        "account_id": result.account_id,
        "enterprise_url": result.enterprise_url,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }
    output = Path(path).expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(status_payload, ensure_ascii=True, indent=2), encoding="utf-8")
    try:
        output.chmod(0o600)
    except OSError:
        pass


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run an OAuth device-flow login and store the token in the gateway config."
    )
    parser.add_argument(
        "--provider",
        required=True,
        choices=sorted(DEVICE_FLOW_PROVIDERS),
        help="Device-flow provider (openai subscription or GitHub Copilot).",
    )
    parser.add_argument(
        "--enterprise-url",
        default="",
        help="GitHub Enterprise host or URL for copilot (default: github.com).",
    )
    parser.add_argument("--profile", default="default", help="Config profile key.")
    parser.add_argument(
        "--config-path",
        default=None,
        help="Override config store path (default: ~/.config/claw_gateway/runtime_config.json).",
    )
    parser.add_argument(
        "--max-poll-attempts",
        type=int,
        default=None,
        help="Stop polling after this many attempts (default: poll until approved).",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not auto-open the verification URL.",
    )
    parser.add_argument(
        "--status-file",
        default=None,
        help="Optional status output JSON file (metadata only, no token values).",
    )
    return parser


def run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = GatewaySettings.from_env()
    if args.max_poll_attempts is not None:
        settings = GatewaySettings.model_validate(
            {**settings.model_dump(), "max_poll_attempts": args.max_poll_attempts}
        )
    config_store = FileConfigStore(args.config_path)
    engine = DeviceFlowEngine(settings=settings)

    print("[1/3] Requesting device code")
    try:
        session = engine.start_device_flow(args.provider, args.enterprise_url)
    except OAuthError as exc:
        print(f"OAuth flow failed: {exc}")
        return 1
    _print_instructions(session)

    if args.no_browser:
        print("[2/3] Browser auto-open disabled. Open URL manually.")
    else:
        print("[2/3] Opening browser")
        if not webbrowser.open(session.verification_url):
            print("Browser could not be opened automatically. Open URL manually.")

    print("[3/3] Waiting for authorization")
    try:
        result = engine.complete_device_flow(session)
    except KeyboardInterrupt:
        print("Login cancelled.")
        return 130
    except OAuthError as exc:
        print(f"OAuth flow failed: {exc}")
        return 1

    updated = config_store.apply_token_result(result, args.profile, provider=session.provider)
    print(
        "Login complete: "
        f"provider={session.provider}, profile={args.profile}, "
        f"token={mask_secret(updated.oauth_access_token)}, "
        f"expires={_describe_expiry(result.expires_at_ms)}, config_path={config_store.path}"
    )
    if result.account_id:
        print(f"Account id: {result.account_id}")

    if args.status_file:
        _write_status_file(
            path=args.status_file,
            provider=session.provider,
            profile=args.profile,
            config_path=config_store.path,
            result=result,
        )
        print(f"Status file written: {Path(args.status_file).expanduser().resolve()}")

    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
