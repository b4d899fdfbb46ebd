"""
Seed Admissions Data

Creates (and activates) an academic period and the default requirement
definitions, then prints a registrar token for the admin endpoints.
Safe to run more than once.

Usage:
    cd apps/api
    python scripts/seed_admissions.py --year 2025 --semester 1
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from app.core.database import async_session_maker, engine
from app.core.security import create_access_token
from app.modules.admissions import repository
from app.modules.admissions.helpers import make_short_label

# (description, category)
DEFAULT_REQUIREMENTS = [
    ("Form 138", "regular"),
    ("Good Moral Certificate", "regular"),
    ("PSA Birth Certificate", "regular"),
    ("2x2 ID Picture", "regular"),
    ("Certificate of Transfer Credential", "satellite"),
]


async def seed_admissions(year: int, semester_code: str, description: str | None) -> None:
    async with async_session_maker() as db:
        period = await repository.get_period(db, year, semester_code)
        if period is None:
            period = await repository.create_period(db, year, semester_code, description)
            print(f"Created academic period {period.period_key}")
        else:
            print(f"Academic period {period.period_key} already exists")

        await repository.activate_period(db, period.id)
        print(f"  Active period: {year} semester {semester_code}")

        for requirement_description, category in DEFAULT_REQUIREMENTS:
            short_label = make_short_label(requirement_description)
            if await repository.get_requirement_by_short_label(db, short_label):
                print(f"  Requirement {short_label} already exists")
                continue
            await repository.create_requirement(
                db,
                description=requirement_description,
                short_label=short_label,
                category=category,
            )
            print(f"  Created requirement {short_label} ({category})")

        await db.commit()

    await engine.dispose()

    token = create_access_token(
        "seed-registrar",
        additional_claims={"name": "Seed Registrar", "role": "registrar"},
    )
    print("Registrar token (for the admin endpoints):")
    print(f"  {token}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--year", type=int, required=True)
    parser.add_argument("--semester", required=True, help="Semester code, e.g. 1")
    parser.add_argument("--description", default=None, help="e.g. First Semester")
    args = parser.parse_args()

    asyncio.run(seed_admissions(args.year, args.semester, args.description))
