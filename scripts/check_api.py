"""
Connectivity check against a running Conecta API.

With ``--scenario`` it also registers a throwaway user and walks through
creating, listing and deleting a budget entry.
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from pathlib import Path

import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from conecta.client import ApiClientError, ConectaClient

logger = logging.getLogger(__name__)


def run_budget_scenario(client: ConectaClient) -> None:
    email = f"check-{uuid.uuid4().hex[:8]}@example.com"
    client.register("API Check", email, "check-password", "FREELANCER")
    client.login(email, "check-password")
    logger.info("Registered and logged in as %s", email)

    entry = client.post(
        "/api/budget",
        {"type": "INCOME", "category": "Project-Based Income", "amount": 100},
    )
    listed = client.get("/api/budget")
    ids = [item["id"] for item in listed["entries"]]
    if ids != [entry["id"]]:
        raise RuntimeError(f"Expected only {entry['id']} in budget, got {ids}")

    client.delete(f"/api/budget/{entry['id']}")
    listed = client.get("/api/budget")
    if listed["entries"]:
        raise RuntimeError("Budget entry still listed after delete")
    logger.info("Budget scenario passed")


def main() -> int:
    parser = argparse.ArgumentParser(description="Check a Conecta API deployment")
    parser.add_argument("--base-url", type=str, default="http://localhost:5001")
    parser.add_argument(
        "--scenario",
        action="store_true",
        help="Also run the register/login/budget scenario",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    client = ConectaClient(args.base_url)
    try:
        health = client.health()
        logger.info("API %s, database %s", health["status"], health["database"])
        if args.scenario:
            run_budget_scenario(client)
    except (ApiClientError, requests.RequestException, RuntimeError) as exc:
        logger.error("Check failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
