"""
Generate a random JWT secret and optionally store it in an env file.
"""

from __future__ import annotations

import argparse
import logging
import secrets
from pathlib import Path

logger = logging.getLogger(__name__)


def write_env_value(env_file: Path, key: str, value: str) -> None:
    """Set ``key=value`` in ``env_file``, replacing an existing assignment."""
    lines = env_file.read_text(encoding="utf-8").splitlines() if env_file.exists() else []
    replaced = False
    for index, line in enumerate(lines):
        if line.split("=", 1)[0].strip() == key:
            lines[index] = f"{key}={value}"
            replaced = True
    if not replaced:
        lines.append(f"{key}={value}")
    env_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a JWT signing secret")
    parser.add_argument(
        "--bytes",
        type=int,
        default=64,
        help="Number of random bytes (hex encoded)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Write JWT_SECRET into this env file instead of printing it",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    secret = secrets.token_hex(args.bytes)
    if args.env_file:
        write_env_value(args.env_file, "JWT_SECRET", secret)
        logger.info("Wrote JWT_SECRET to %s", args.env_file)
    else:
        print(f"JWT_SECRET={secret}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
