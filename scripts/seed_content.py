"""
Insert the default guides and service directory entries.

Safe to re-run: guides are matched by slug and directory entries by name.
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
from conecta.constants import GuidePath, ServiceCategory
from conecta.db import DbClient, SqlDbClient

logger = logging.getLogger(__name__)

DEFAULT_GUIDES = [
    {
        "title": "Getting your NIE in Alicante",
        "slug": "getting-your-nie",
        "path": GuidePath.GENERAL.value,
        "content": (
            "Book a cita previa at the Oficina de Extranjería, bring your passport, "
            "form EX-15 and the paid 790-012 fee, and collect the certificate on the day."
        ),
    },
    {
        "title": "Registering as autónomo",
        "slug": "registering-as-autonomo",
        "path": GuidePath.FREELANCER.value,
        "content": (
            "Register with Hacienda using form 036 or 037, then with the Seguridad "
            "Social (RETA). Check whether you qualify for the reduced flat rate."
        ),
    },
    {
        "title": "Quarterly IVA and IRPF returns",
        "slug": "quarterly-iva-irpf",
        "path": GuidePath.FREELANCER.value,
        "content": (
            "Models 303 (IVA) and 130 (IRPF) are filed in April, July, October and "
            "January. Keep invoices and expense receipts for every quarter."
        ),
    },
    {
        "title": "Forming a Sociedad Limitada",
        "slug": "forming-a-sociedad-limitada",
        "path": GuidePath.ENTREPRENEUR.value,
        "content": (
            "Reserve the company name, open a bank account for the share capital, "
            "sign the deeds before a notary and register at the Registro Mercantil."
        ),
    },
    {
        "title": "Funding for startups in the Valencian Community",
        "slug": "startup-funding-valencia",
        "path": GuidePath.ENTREPRENEUR.value,
        "content": (
            "Look at ENISA loans, IVACE grants and the local business incubators "
            "for early stage financing."
        ),
    },
]

DEFAULT_DIRECTORY = [
    {
        "name": "Gestoría Costa Blanca",
        "category": ServiceCategory.GESTOR.value,
        "description": "Tax filings and Seguridad Social paperwork for autónomos.",
        "contact_info": {"phone": "+34 965 000 001", "website": "https://example.com/gestoria"},
        "is_recommended": True,
    },
    {
        "name": "Abogados Explanada",
        "category": ServiceCategory.LAWYER.value,
        "description": "Immigration and company law in English and Spanish.",
        "contact_info": {"phone": "+34 965 000 002"},
        "is_recommended": True,
    },
    {
        "name": "Alicante Homes",
        "category": ServiceCategory.REAL_ESTATE.value,
        "description": "Long-term rentals and office space in the city centre.",
        "contact_info": {"email": "info@example.com"},
        "is_recommended": False,
    },
    {
        "name": "Traducciones Juradas Levante",
        "category": ServiceCategory.TRANSLATOR.value,
        "description": "Sworn translations for official documents.",
        "contact_info": {"phone": "+34 965 000 004"},
        "is_recommended": False,
    },
]


def seed(db: DbClient) -> tuple[int, int]:
    """Insert missing defaults; returns (guides added, directory entries added)."""
    guides_added = 0
    for guide in DEFAULT_GUIDES:
        if db.get_guide_by_slug(guide["slug"]) is None:
            db.create_guide(**guide)
            guides_added += 1

    existing_names = {entry.name for entry in db.list_directory_entries()}
    entries_added = 0
    for entry in DEFAULT_DIRECTORY:
        if entry["name"] not in existing_names:
            db.create_directory_entry(**entry)
            entries_added += 1
    return guides_added, entries_added


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed default Conecta content")
    parser.add_argument("--database-url", type=str, default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database configured; set DATABASE_URL or pass --database-url")
        return 1

    guides, entries = seed(SqlDbClient(database_url))
    logger.info("Seeded %d guides and %d directory entries", guides, entries)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
