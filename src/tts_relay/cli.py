"""
Command-Line Interface for tts-relay.

Runs the relay's services in-process, without the HTTP server. Handy for
checking provider credentials, producing a one-off audio file and
sweeping old storage from cron.

Usage Examples:
    # Which providers are configured, and which answer right now
    tts-relay providers
    tts-relay providers --json

    # Convert text and write the audio file
    tts-relay convert "Hello world" --out hello.mp3
    tts-relay convert "Hello world" --out hello.mp3 --voice Joanna --volume 80 --speed 1.2

    # Remove stored audio older than 48 hours
    tts-relay cleanup --max-age-hours 48

Environment Variables:
    TTS_RELAY_SETTINGS: Settings file (default config/settings.yaml)
    TTS_RELAY_STORAGE_DIR: Storage directory override
    GOOGLE_TTS_API_KEY, VOICERSS_API_KEY: Provider credentials

Exit codes:
    0  success
    1  conversion failed (validation, no provider, all providers failed)
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from tts_relay.api.dependencies import ServiceContainer, build_container
from tts_relay.core.config import load_settings_or_default
from tts_relay.core.errors import RelayError
from tts_relay.core.logging import configure_logging, fail, get_logger, info, request_scope


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tts-relay", description="tts-relay CLI (serverless)")
    parser.add_argument("--settings", help="Settings file (default: $TTS_RELAY_SETTINGS or config/settings.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_providers = sub.add_parser("providers", help="Probe every configured provider")
    p_providers.add_argument("--json", action="store_true", help="Print JSON summary")

    p_convert = sub.add_parser("convert", help="Convert text to an audio file")
    p_convert.add_argument("text", help="Text to convert")
    p_convert.add_argument("--out", required=True, help="Output audio path")
    p_convert.add_argument("--voice", help="Provider-specific voice")
    p_convert.add_argument("--volume", type=int, help="Volume 0-100")
    p_convert.add_argument("--speed", type=float, help="Playback speed 0.8-1.5")
    p_convert.add_argument("--json", action="store_true", help="Print JSON summary")

    p_cleanup = sub.add_parser("cleanup", help="Remove old stored audio")
    p_cleanup.add_argument("--max-age-hours", type=float, help="Retention window (default from settings)")

    return parser.parse_args(argv)


def _audio_settings(args: argparse.Namespace) -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    if args.voice:
        settings["voice"] = args.voice
    if args.volume is not None:
        settings["volume"] = args.volume
    if args.speed is not None:
        settings["playback_speed"] = args.speed
    return settings


def _cmd_providers(container: ServiceContainer, args: argparse.Namespace) -> int:
    reports = [r.to_dict() for r in container.orchestrator.get_providers_status()]
    if args.json:
        print(json.dumps({"ok": True, "providers": reports}, ensure_ascii=False))
        return 0

    for r in reports:
        state = "available" if r["available"] else "unavailable"
        print(f"{r['name']:<10} priority={r['priority']:<5} timeout={r['timeout_s']}s  {state}")
    return 0


def _cmd_convert(container: ServiceContainer, args: argparse.Namespace) -> int:
    log = get_logger("tts-relay.cli")
    try:
        record = container.orchestrator.convert(args.text, _audio_settings(args))
    except RelayError as e:
        fail(log, "cli_convert_failed", code=e.code, error=e.message)
        if args.json:
            print(json.dumps(e.to_dict(), ensure_ascii=False, default=str))
        else:
            print(f"[FAILED] {e.code}: {e.message}")
        return 1

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(record.result.audio)

    payload = {
        "ok": True,
        "id": record.id,
        "out": str(out_path),
        "bytes": record.result.size,
        "format": record.result.format,
        "duration": record.result.duration,
        "tts_service": record.provider,
        "voice": record.result.metadata.voice,
    }
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(f"[OK] {record.provider} -> {out_path} ({record.result.size} bytes, {record.result.format})")
    return 0


def _cmd_cleanup(container: ServiceContainer, args: argparse.Namespace) -> int:
    hours = args.max_age_hours
    if hours is None:
        hours = container.config.cleanup.storage_max_age_hours
    removed = container.storage.cleanup(hours)
    print(json.dumps({"ok": True, "removed_files": removed, "max_age_hours": hours}))
    return 0


_COMMANDS = {
    "providers": _cmd_providers,
    "convert": _cmd_convert,
    "cleanup": _cmd_cleanup,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 when a conversion fails).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-relay.cli")
    with request_scope(str(uuid4())[:12]):
        container = build_container(load_settings_or_default(args.settings))
        info(log, "cli_start", command=args.command, providers=container.registry.names())
        try:
            return _COMMANDS[args.command](container, args)
        finally:
            container.close()


if __name__ == "__main__":
    raise SystemExit(main())
