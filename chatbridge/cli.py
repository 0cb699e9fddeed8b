"""CLI entry point for chatbridge.

Thin terminal front end over the core: list the merged model catalog,
stream a chat reply, or pull a model onto the local server.

Entry point:
    chatbridge models [--json]
    chatbridge chat <model> <prompt> [--system TEXT] [--backend ollama|openai]
    chatbridge pull <name>
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from contextlib import contextmanager
from typing import Optional

from dotenv import load_dotenv

from chatbridge.adapters.schema import (
    BackendKind,
    ChatRequest,
    Message,
    Model,
    PullProgress,
    PullRequest,
    StreamEvent,
)
from chatbridge.cancellation import CancellationToken
from chatbridge.catalog import find_model
from chatbridge.config import Settings, SettingsSource, load_settings_from_env, static_settings
from chatbridge.core import build_catalog, chat, pull_model
from chatbridge.errors import ChatBridgeError

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatbridge",
        description="Stream chats from a local model server or a hosted API.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # models
    models_p = sub.add_parser("models", help="List models from all backends")
    models_p.add_argument(
        "--json", action="store_true", dest="json_output",
        help="Full JSON output (name, backend, metadata)",
    )

    # chat
    chat_p = sub.add_parser("chat", help="Send one prompt and stream the reply")
    chat_p.add_argument("model", help="Model name as listed by `models`")
    chat_p.add_argument("prompt", help="User message")
    chat_p.add_argument("--system", default=None, help="Optional system prompt")
    chat_p.add_argument(
        "--backend", choices=[k.value for k in BackendKind], default=None,
        help="Skip catalog lookup and use this backend directly",
    )

    # pull
    pull_p = sub.add_parser("pull", help="Download a model onto the local server")
    pull_p.add_argument("name", help="Model name, e.g. llama3.2:3b")

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _configured_backends(settings: SettingsSource) -> list[BackendKind]:
    """Backends worth asking for models: the hosted API only with a key."""
    current: Optional[Settings] = settings()
    backends = [BackendKind.OLLAMA]
    if current is not None and current.openai_api_key:
        backends.append(BackendKind.OPENAI)
    return backends


async def _cmd_models(settings: SettingsSource, json_output: bool = False) -> int:
    """List the merged catalog. Returns exit code."""
    models = await build_catalog(settings, backends=_configured_backends(settings)).list_all_models()

    if json_output:
        json.dump([m.model_dump(mode="json") for m in models], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        for model in models:
            print(f"{model.backend.value}\t{model.name}")
    return 0


async def _resolve_model(
    settings: SettingsSource, name: str, backend: Optional[str]
) -> Optional[Model]:
    if backend:
        return Model(name=name, backend=BackendKind(backend))
    catalog = await build_catalog(settings, backends=_configured_backends(settings)).list_all_models()
    return find_model(catalog, name)


@contextmanager
def _interrupt_cancels(token: CancellationToken):
    """Route Ctrl-C to the cancellation token while the block runs."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError, ValueError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort instead of cancel")
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def _cmd_chat(
    settings: SettingsSource,
    model_name: str,
    prompt: str,
    system: Optional[str] = None,
    backend: Optional[str] = None,
) -> int:
    """Stream one reply to stdout. Returns exit code."""
    model = await _resolve_model(settings, model_name, backend)
    if model is None:
        print(f"Error: model not found: {model_name}", file=sys.stderr)
        return 1

    messages = []
    if system:
        messages.append(Message(role="system", content=system))
    messages.append(Message(role="user", content=prompt))
    request = ChatRequest(model=model.name, messages=messages)

    token = CancellationToken()

    def on_event(event: StreamEvent) -> None:
        if event.type == "content":
            sys.stdout.write(event.content)
            sys.stdout.flush()

    with _interrupt_cancels(token):
        await chat(model, request, settings, on_event, cancel_token=token)
    sys.stdout.write("\n")
    if token.is_cancelled:
        print("(cancelled)", file=sys.stderr)
    return 0


def _format_progress(progress: PullProgress) -> str:
    percent = progress.percent
    if percent is None:
        return progress.status
    return f"{progress.status} {percent:.1f}%"


async def _cmd_pull(settings: SettingsSource, name: str) -> int:
    """Pull a model, printing one progress line per record. Returns exit code."""
    token = CancellationToken()

    def on_progress(progress: PullProgress) -> None:
        print(_format_progress(progress), file=sys.stderr)

    with _interrupt_cancels(token):
        await pull_model(PullRequest(name=name), settings, on_progress, cancel_token=token)
    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main(argv: Optional[list[str]] = None):
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    load_dotenv()
    source = static_settings(load_settings_from_env())

    try:
        if args.command == "models":
            code = asyncio.run(_cmd_models(source, json_output=args.json_output))
        elif args.command == "chat":
            code = asyncio.run(_cmd_chat(
                source,
                model_name=args.model,
                prompt=args.prompt,
                system=args.system,
                backend=args.backend,
            ))
        elif args.command == "pull":
            code = asyncio.run(_cmd_pull(source, args.name))
        else:
            parser.print_help()
            code = 1
    except ChatBridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
