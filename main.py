from __future__ import annotations

import argparse
import getpass
import json
import logging
import uuid
from typing import Any, Sequence

from dotenv import load_dotenv

from dri.auth.models import AuthResult
from dri.core.config import AppConfig
from dri.core.logging import set_correlation_id, setup_logging
from dri.session.context import ClientContext, build_context


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="DRI portal client: accounts, avatar verification and sessions."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-account", help="Create an unverified account.")
    create.add_argument("nick")
    create.add_argument("--password", default="", help="Prompted when omitted.")

    resend = sub.add_parser("resend-code", help="Issue a new verification code.")
    resend.add_argument("nick")

    verify = sub.add_parser(
        "verify", help="Confirm the code published in the avatar motto."
    )
    verify.add_argument("nick")
    verify.add_argument("code")

    login = sub.add_parser("login", help="Sign in on this device.")
    login.add_argument("nick")
    login.add_argument("--password", default="", help="Prompted when omitted.")
    login.add_argument(
        "--no-stay",
        action="store_true",
        help="Do not keep the session after this process exits.",
    )

    sub.add_parser("logout", help="End the session on this device.")
    sub.add_parser("whoami", help="Show the stored session snapshot.")
    sub.add_parser("check", help="Revalidate the stored session.")

    request_reset = sub.add_parser(
        "request-reset", help="Issue a password reset code."
    )
    request_reset.add_argument("nick")

    reset = sub.add_parser("reset-password", help="Confirm a reset code.")
    reset.add_argument("nick")
    reset.add_argument("code")
    reset.add_argument("--new-password", default="", help="Prompted when omitted.")

    serve = sub.add_parser("serve", help="Run the local HTTP bridge for the UI.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8765)
    return parser


def _password(value: str, prompt: str = "Senha: ") -> str:
    return value or getpass.getpass(prompt)


def _emit(result: AuthResult | dict[str, Any]) -> int:
    payload = (
        result.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"token": True, "session": {"token": True}},
        )
        if isinstance(result, AuthResult)
        else result
    )
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    if isinstance(result, AuthResult):
        return 0 if result.success else 1
    return 0


def run_command(args: argparse.Namespace, context: ClientContext) -> int:
    auth = context.auth
    if args.command == "create-account":
        result = auth.create_account(args.nick, _password(args.password))
        if result.success:
            logging.getLogger("main").info(
                "Publish code %s in the avatar motto, then run: verify %s %s",
                result.code,
                args.nick,
                result.code,
            )
        return _emit(result)
    if args.command == "resend-code":
        return _emit(auth.resend_verification_code(args.nick))
    if args.command == "verify":
        return _emit(auth.verify_and_activate(args.nick, args.code))
    if args.command == "login":
        return _emit(
            auth.login(args.nick, _password(args.password), stay_signed_in=not args.no_stay)
        )
    if args.command == "logout":
        return _emit(auth.logout())
    if args.command == "whoami":
        snapshot = auth.get_current_user()
        return _emit(
            {
                "authenticated": snapshot is not None,
                "user": snapshot.model_dump(mode="json", exclude={"token"})
                if snapshot
                else None,
            }
        )
    if args.command == "check":
        return _emit(auth.check_session())
    if args.command == "request-reset":
        return _emit(auth.request_password_reset(args.nick))
    if args.command == "reset-password":
        return _emit(
            auth.reset_password(
                args.nick, args.code, _password(args.new_password, "Nova senha: ")
            )
        )
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        from web_api import create_app

        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return 0

    set_correlation_id(f"cli-{uuid.uuid4().hex[:12]}")
    context = build_context(config)
    try:
        return run_command(args, context)
    finally:
        context.close()


if __name__ == "__main__":
    raise SystemExit(main())
