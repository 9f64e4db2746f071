"""
Server entry point: ``python -m conecta.main`` or ``uvicorn conecta.main:app``.
"""

from __future__ import annotations

import logging

from conecta.app import create_app
from conecta.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(name)s %(levelname)s %(asctime)s %(message)s",
    datefmt="%m/%d/%Y %I:%M:%S %p",
)

app = create_app(settings)


def main() -> int:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
