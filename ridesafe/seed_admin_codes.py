"""Seed the admin code registry with the configured bypass codes.

Usage:
    python -m ridesafe.seed_admin_codes
"""
import sys

from ridesafe.core.errors import PersistenceError
from ridesafe.database import Base, SessionLocal, engine
from ridesafe.models.admin_code import AdminCode
from ridesafe.services.admin_codes import AdminCodeRegistry


def main() -> None:
    Base.metadata.create_all(bind=engine, tables=[AdminCode.__table__])
    db = SessionLocal()
    try:
        registry = AdminCodeRegistry(db)
        seeded = registry.initialize_defaults()
        codes = registry.list_all()
    except PersistenceError as exc:
        print("Admin code seeding failed:", exc, file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    if not seeded:
        print("Admin code registry already initialized.")
    for admin_code in codes:
        print(f"{admin_code.code}\t{'active' if admin_code.is_active else 'inactive'}")


if __name__ == "__main__":
    main()
