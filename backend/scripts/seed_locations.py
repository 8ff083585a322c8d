#!/usr/bin/env python
"""Idempotent seed script for locations and the initial operator account.

Usage:
    python backend/scripts/seed_locations.py                 # seed normally
    python backend/scripts/seed_locations.py --dry-run       # run logic then rollback (no DB changes)
    python backend/scripts/seed_locations.py --show          # print seeded locations with map status
    python backend/scripts/seed_locations.py --skip-admin    # locations only
"""
from __future__ import annotations
import os, sys, argparse, textwrap, pathlib, uuid
from sqlalchemy import select, inspect

# Allow running from repo root or backend/
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from queue_manager import create_app, get_db  # type: ignore
from queue_manager.models.authz import Base, Profile
from queue_manager.models.location import Location
import queue_manager.models.queue_ticket  # noqa: F401
import queue_manager.models.audit  # noqa: F401
from queue_manager.utils.geo import extract_location_coordinates
from queue_manager.utils.timeutil import utcnow
from seeds.locations import LOCATIONS

SEEDED_FIELDS = ('name', 'category', 'services', 'address', 'coords', 'phone', 'hours')


def _row_values(raw: dict) -> dict:
    values = {f: raw.get(f) for f in SEEDED_FIELDS}
    values['name'] = values['name'] or Location.DEFAULT_NAME
    values['category'] = (values['category'] or Location.CATEGORY_OTHER).lower()
    values['services'] = list(values['services'] or Location.DEFAULT_SERVICES)
    return values


def ensure_locations(session):
    """Insert missing locations and refresh changed ones; returns (created, updated)."""
    existing = {loc.id: loc for loc in session.execute(select(Location)).scalars().all()}
    created = updated = 0
    for raw in LOCATIONS:
        values = _row_values(raw)
        loc = existing.get(raw['id'])
        if loc is None:
            session.add(Location(id=raw['id'], updated_at=utcnow(), **values))
            created += 1
            continue
        changed = {k: v for k, v in values.items() if getattr(loc, k) != v}
        if changed:
            for k, v in changed.items():
                setattr(loc, k, v)
            loc.updated_at = utcnow()
            updated += 1
    return created, updated


def ensure_operator(session):
    email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').strip().lower()
    existing = session.execute(select(Profile).where(Profile.email == email)).scalar_one_or_none()
    if existing:
        if existing.role != Profile.ROLE_ADMIN:
            print(f"[WARN] {email} exists with role {existing.role}; leaving it unchanged")
        return False
    op = Profile(uid=uuid.uuid4().hex, name='Operator', email=email, role=Profile.ROLE_ADMIN,
                 auth_provider='password', is_active=True, first_queue_completed=False)
    op.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(op)
    print(f"[INFO] Created operator account {email} with temporary password.")
    return True


def print_locations(session):
    rows = session.execute(select(Location).order_by(Location.id)).scalars().all()
    if not rows:
        print("[INFO] No locations present.")
        return
    id_w = max(len(r.id) for r in rows)
    print(f"{'Id'.ljust(id_w)} | {'Category'.ljust(10)} | Map")
    print('-' * (id_w + 24))
    for loc in rows:
        coords = extract_location_coordinates({'coords': loc.coords})
        pin = f"{coords.lat:.4f},{coords.lng:.4f}" if coords else 'no map location'
        print(f"{loc.id.ljust(id_w)} | {loc.category_or_other.ljust(10)} | {pin}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed service locations and the operator account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_locations.py\n  dry run: seed_locations.py --dry-run\n  list: seed_locations.py --show\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--show', action='store_true', help='Print locations and their map status after seeding')
    p.add_argument('--skip-admin', action='store_true', help='Do not create the operator account')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table(Location.__tablename__):
            # Bootstrap schema when migrations have not run yet; prefer alembic upgrade
            Base.metadata.create_all(engine)
        try:
            created, updated = ensure_locations(session)
            admin_created = False if args.skip_admin else ensure_operator(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Locations would create: {created}, update: {updated}, operator: {admin_created}")
            else:
                session.commit()
                print(f"[DONE] Locations created: {created}, updated: {updated}, operator created: {admin_created}")
            if args.show:
                print_locations(session)
        except Exception:
            session.rollback()
            raise
    return 0


if __name__ == '__main__':
    sys.exit(main())
