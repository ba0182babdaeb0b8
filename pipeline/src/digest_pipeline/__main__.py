"""Pipeline entry point for running as a module: python -m digest_pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from mundus.config import get_settings
from mundus.database import close_engine
from mundus.errors import DigestError

from digest_pipeline.orchestrator import run_digest_with_retry

logger = logging.getLogger("digest_pipeline")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="digest_pipeline",
        description="Curate a digest from a JSON request file.",
    )
    parser.add_argument("request", type=Path, help="Path to the digest request JSON")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Write the envelope here instead of stdout")
    parser.add_argument("--max-retries", type=int, default=None, help="Override the configured retry count")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(args.request.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Could not read request %s: %s", args.request, e)
        return 2

    try:
        envelope = await run_digest_with_retry(payload, max_retries=args.max_retries)
    except DigestError as e:
        logger.error("Digest failed [%s] after %d attempt(s): %s", e.kind, e.attempts, e)
        print(json.dumps({"success": False, "error": e.to_dict()}, default=str), file=sys.stderr)
        return 1
    finally:
        await close_engine()

    output = envelope.model_dump_json(indent=2)
    if args.output:
        args.output.write_text(output + "\n", encoding="utf-8")
        logger.info("Digest written to %s", args.output)
    else:
        print(output)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    level = (args.log_level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr if args.output is None else sys.stdout,
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
