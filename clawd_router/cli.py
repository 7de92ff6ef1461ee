from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from clawd_router import VERSION
from clawd_router.server import run
from clawd_router.settings import get_settings

EPILOG = """\
Environment:
  OPENROUTER_API_KEY   Required - OpenRouter API key
  CLAWD_ROUTER_PORT    Default proxy port (default: 8403)
  ROUTING_CONFIG_PATH  Optional YAML routing profile (tiers, ecoTiers, aiRouting)

Example:
  clawd-router --port 8403
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawd-router",
        description="OpenRouter proxy with LLM-based model routing and fallback.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--version", action="version", version=VERSION)
    parser.add_argument("--port", type=int, default=None, help="Port to listen on.")
    parser.add_argument("--host", default=None, help="Host interface to bind.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if not settings.resolved_api_key:
        print(
            "[clawd-router] Warning: OPENROUTER_API_KEY is not set",
            file=sys.stderr,
        )
    try:
        run(settings, host=args.host, port=args.port)
    except OSError as exc:
        print(f"[clawd-router] Fatal error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
