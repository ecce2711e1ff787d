#!/usr/bin/env python
"""Lightweight CLI for chatting with a running SmartPlan API server."""

from __future__ import annotations

import argparse
import sys
from typing import Any

import httpx

DEFAULT_BASE_URL = "http://localhost:3001"


def _send(client: httpx.Client, message: str, user_email: str) -> dict[str, Any]:
    response = client.post(
        "/api/ai/send-message",
        json={"message": message, "userEmail": user_email},
    )
    if response.status_code >= 400:
        detail = response.json().get("detail", response.text)
        raise RuntimeError(f"Server returned {response.status_code}: {detail}")
    return response.json()


def _print_reply(payload: dict[str, Any]) -> None:
    print(f"Assistant: {payload.get('message') or '(no text response)'}")
    if payload.get("needsConnection") and payload.get("redirectUrl"):
        print(f"  Connect here: {payload['redirectUrl']}")
    for call in payload.get("toolCalls") or []:
        print(f"  tool: {call.get('name')} {call.get('arguments')}")
    print()


def run_once(client: httpx.Client, message: str, user_email: str) -> int:
    _print_reply(_send(client, message, user_email))
    return 0


def run_interactive(client: httpx.Client, user_email: str) -> int:
    print(f"Chatting as {user_email}. Type 'exit' or 'quit' to end.\n")
    while True:
        try:
            message = input("You: ")
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye!")
            return 0
        if message.strip().lower() in {"exit", "quit"}:
            print("Goodbye!")
            return 0
        if not message.strip():
            continue
        try:
            _print_reply(_send(client, message, user_email))
        except (RuntimeError, httpx.HTTPError) as exc:
            print(f"Error: {exc}\n")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send calendar requests to the API or run an interactive session."
    )
    parser.add_argument(
        "message",
        nargs="?",
        help="Single message to send. If omitted, interactive mode is started.",
    )
    parser.add_argument("--user-email", required=True, help="Identity to chat as.")
    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"API server address (default: {DEFAULT_BASE_URL}).",
    )

    args = parser.parse_args(argv)

    with httpx.Client(base_url=args.base_url, timeout=60.0) as client:
        if args.message:
            try:
                return run_once(client, args.message, args.user_email)
            except (RuntimeError, httpx.HTTPError) as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 1
        return run_interactive(client, args.user_email)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
