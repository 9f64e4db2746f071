"""
Create a user for manual testing, or report the existing one.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from conecta.config import get_settings
from conecta.constants import OnboardingStep, ProfessionalPath, Role, checklist_keys_for
from conecta.db import SqlDbClient
from conecta.security import hash_password

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a Conecta test user")
    parser.add_argument("--email", type=str, default="test@example.com")
    parser.add_argument("--password", type=str, default="test123")
    parser.add_argument("--name", type=str, default="Test User")
    parser.add_argument(
        "--path",
        type=str,
        choices=[path.value for path in ProfessionalPath],
        default=ProfessionalPath.FREELANCER.value,
        help="Professional path",
    )
    parser.add_argument("--admin", action="store_true", help="Grant the admin role")
    parser.add_argument("--database-url", type=str, default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    database_url = args.database_url or settings.database_url
    if not database_url:
        logger.error("No database configured; set DATABASE_URL or pass --database-url")
        return 1
    db = SqlDbClient(database_url)

    existing = db.get_user_by_email(args.email)
    if existing:
        logger.info("User already exists: %s (%s)", existing.email, existing.id)
        return 0

    user = db.create_user(
        name=args.name,
        email=args.email,
        password_hash=hash_password(args.password, rounds=settings.bcrypt_rounds),
        role=(Role.ADMIN if args.admin else Role.USER).value,
        professional_path=args.path,
        onboarding_completed=True,
        onboarding_step=OnboardingStep.COMPLETED.value,
    )
    db.ensure_checklist_items(user.id, checklist_keys_for(user.professional_path))
    logger.info("Created user %s (%s) with role %s", user.email, user.id, user.role)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
