"""Entry point: python -m traitcore <command> <user> [...]

- summary <user>                     Identity summary as injected into prompts
- dump <user>                        Raw identity snapshot JSON
- ingest <user> [file]               Apply a JSON signal array (file or stdin)
- tools <user> <tool>...             Record tool usage
- personality <user> [--context TAG] Personality instructions for a context
- seed <user>                        Sync profile/identity-seed.md
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from traitcore.config import load_config

USAGE = """\
Usage: python -m traitcore <command> <user> [args]
  summary <user>                      Identity summary
  dump <user>                         Raw identity snapshot JSON
  ingest <user> [file]                Apply a JSON signal array (file or stdin)
  tools <user> <tool>...              Record tool usage
  personality <user> [--context TAG]  Personality instructions
  seed <user>                         Sync the settings seed"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _usage() -> None:
    print(USAGE, file=sys.stderr)
    sys.exit(1)


def _read_signals(path: str | None) -> list:
    text = Path(path).read_text(encoding="utf-8") if path else sys.stdin.read()
    data = json.loads(text or "[]")
    if isinstance(data, dict):
        data = data.get("signals", [])
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of signals")
    return data


def _option(args: list[str], name: str) -> str | None:
    if name in args:
        idx = args.index(name)
        if idx + 1 < len(args):
            return args[idx + 1]
    return None


def main() -> None:
    args = sys.argv[1:]
    if len(args) < 2:
        _usage()
    cmd, user_id, rest = args[0], args[1], args[2:]

    config = load_config()
    _setup_logging(config.log_level)

    from traitcore.identity.engine import IdentityEngine
    from traitcore.personality.engine import PersonalityEngine

    identity = IdentityEngine.from_config(config)

    if cmd == "summary":
        print(identity.summary(user_id) or "(no confident traits)")
    elif cmd == "dump":
        loaded = identity.load(user_id)
        if loaded.disabled_reason:
            print(f"Profile unavailable: {loaded.disabled_reason}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(loaded.snapshot.to_dict(), indent=2, ensure_ascii=False))
    elif cmd == "ingest":
        try:
            signals = _read_signals(rest[0] if rest else None)
        except (OSError, ValueError) as e:
            print(f"Cannot read signals: {e}", file=sys.stderr)
            sys.exit(1)
        result = identity.ingest(user_id, signals, source="cli")
        print(
            json.dumps(
                {
                    "userId": result.user_id,
                    "disabledReason": result.disabled_reason,
                    "applied": len(result.applied_signals),
                    "rejected": [item["rejectedReason"] for item in result.rejected_signals],
                    "decisions": result.decisions,
                },
                indent=2,
            )
        )
        if result.prompt_section:
            print(result.prompt_section)
    elif cmd == "tools":
        if not rest:
            _usage()
        result = identity.record_tool_usage(user_id, rest, source="cli")
        for update in result.tool_updates:
            print(f"{update.tool_name}: uses={update.count} confidence={update.confidence:.2f}")
    elif cmd == "personality":
        personality = PersonalityEngine.from_config(config)
        loaded = personality.load(user_id, context=_option(rest, "--context"))
        print(loaded.prompt_section or "(no calibrated dimensions)")
    elif cmd == "seed":
        result = identity.sync_settings_seed(user_id)
        if result.skipped:
            print("No usable settings seed found")
        else:
            print(f"Applied {len(result.applied_signals)} seed signals")
    else:
        _usage()


if __name__ == "__main__":
    main()
