"""CLI entry point for preset-relay.

Manages the preset file and runs one-off generations through the relay.

Entry point:
    preset-relay presets list [--json]
    preset-relay presets show NAME
    preset-relay presets save NAME [--mode ...] [--source ...] [--model ...]
    preset-relay presets delete NAME
    preset-relay generate --preset NAME --message ROLE:TEXT [--message ...]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from preset_relay.errors import PresetRelayError

logger = logging.getLogger(__name__)

# CLI flag -> apiConfig key
_API_CONFIG_FLAGS = {
    "source": "source",
    "url": "url",
    "api_key": "apiKey",
    "proxy_password": "proxyPassword",
    "model": "model",
    "max_tokens": "max_tokens",
    "temperature": "temperature",
    "top_p": "top_p",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
}


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="preset-relay",
        description="Preset management and relay generation.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--presets-file", default=None,
        help="Preset JSON file (default: PRESET_RELAY_PRESETS_FILE or presets.json)",
    )
    sub = parser.add_subparsers(dest="command")

    # presets
    presets_p = sub.add_parser("presets", help="Manage presets")
    presets_sub = presets_p.add_subparsers(dest="presets_command")

    list_p = presets_sub.add_parser("list", help="List preset names")
    list_p.add_argument(
        "--json", action="store_true", dest="json_output",
        help="Full JSON output",
    )

    show_p = presets_sub.add_parser("show", help="Show one preset as JSON")
    show_p.add_argument("name")

    save_p = presets_sub.add_parser("save", help="Create or replace a preset")
    save_p.add_argument("name")
    save_p.add_argument(
        "--mode", default=None, help="host-delegated or direct-endpoint (default)"
    )
    save_p.add_argument("--source", default=None, help="Protocol family (default: openai)")
    save_p.add_argument("--url", default=None, help="Endpoint URL")
    save_p.add_argument("--api-key", default=None, help="API key")
    save_p.add_argument("--proxy-password", default=None, help="Reverse proxy password")
    save_p.add_argument("--model", default=None, help="Model identifier")
    save_p.add_argument("--max-tokens", default=None, help="Max tokens per response")
    save_p.add_argument("--temperature", default=None)
    save_p.add_argument("--top-p", default=None)
    save_p.add_argument("--frequency-penalty", default=None)
    save_p.add_argument("--presence-penalty", default=None)

    delete_p = presets_sub.add_parser("delete", help="Delete a preset")
    delete_p.add_argument("name")

    # generate
    gen_p = sub.add_parser("generate", help="Generate text with a preset")
    gen_p.add_argument("--preset", required=True, help="Preset name")
    gen_p.add_argument(
        "--message", "-m", action="append", required=True, dest="messages",
        help="ROLE:TEXT (repeatable, in conversation order)",
    )

    return parser


def parse_message(raw: str) -> dict[str, str]:
    """Split "ROLE:TEXT"; text without a role prefix is a user message."""
    role, sep, content = raw.partition(":")
    if not sep:
        return {"role": "user", "content": raw}
    return {"role": role.strip(), "content": content.lstrip()}


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _open_registry(presets_file: Optional[str]):
    from preset_relay.config import get_presets_path
    from preset_relay.presets import PresetRegistry
    from preset_relay.store import PresetStore

    store = PresetStore(presets_file or get_presets_path())
    return PresetRegistry(store.load(), on_update=store.write)


def _cmd_presets_list(registry, json_output: bool = False) -> int:
    if json_output:
        json.dump([p.to_dict() for p in registry.get_all_presets()], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        for preset in registry.get_all_presets():
            print(f"{preset.name}\t{preset.api_mode}\t{preset.api_config.source}")
    return 0


def _cmd_presets_show(registry, name: str) -> int:
    preset = registry.get_preset(name)
    if preset is None:
        print(f"Error: preset not found: {name}", file=sys.stderr)
        return 1
    json.dump(preset.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def _cmd_presets_save(registry, args: argparse.Namespace) -> int:
    # Start from the stored preset so unspecified flags keep their values
    existing = registry.get_preset(args.name.strip())
    config = existing.to_dict() if existing else {"apiConfig": {}}

    if args.mode is not None:
        config["apiMode"] = args.mode
    for flag, key in _API_CONFIG_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            config["apiConfig"][key] = value

    registry.save_preset(args.name, config)
    print(f"Saved preset {args.name.strip()!r}", file=sys.stderr)
    return 0


def _cmd_presets_delete(registry, name: str) -> int:
    if registry.delete_preset(name):
        print(f"Deleted preset {name!r}", file=sys.stderr)
        return 0
    print(f"Error: preset not found: {name}", file=sys.stderr)
    return 1


async def _cmd_generate(registry, preset_name: str, raw_messages: list[str]) -> int:
    from preset_relay.dispatcher import GenerationDispatcher

    dispatcher = GenerationDispatcher(registry)
    messages = [parse_message(m) for m in raw_messages]
    text = await dispatcher.generate(messages, preset_name)
    print(text)
    return 0


def _dispatch(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    registry = _open_registry(args.presets_file)

    if args.command == "generate":
        return asyncio.run(_cmd_generate(registry, args.preset, args.messages))

    if args.presets_command == "list":
        return _cmd_presets_list(registry, json_output=args.json_output)
    if args.presets_command == "show":
        return _cmd_presets_show(registry, args.name)
    if args.presets_command == "save":
        return _cmd_presets_save(registry, args)
    if args.presets_command == "delete":
        return _cmd_presets_delete(registry, args.name)

    parser.print_help()
    return 1


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
    from dotenv import load_dotenv
    load_dotenv()

    try:
        code = _dispatch(args, parser)
    except PresetRelayError as e:
        print(f"{e.kind}: {e.message}", file=sys.stderr)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
