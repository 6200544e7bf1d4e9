#!/usr/bin/env python3
"""Bootstrap an admin employee for initial setup.

Usage:
    # Using environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=SecurePassword123! python scripts/bootstrap_admin.py

    # Or with command line args:
    python scripts/bootstrap_admin.py --email admin@example.com --password SecurePassword123!

Environment Variables:
    ADMIN_EMAIL: Email for the admin employee
    ADMIN_PASSWORD: Password for the admin employee (must meet complexity requirements)
    DATABASE_URL: PostgreSQL connection string
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def validate_password(password: str) -> bool:
    """Check password meets complexity requirements."""
    if len(password) < 12:
        return False
    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(c in "!@#$%^&*()_+-=[]{}|;':\",./<>?" for c in password)
    return sum([has_upper, has_lower, has_digit, has_special]) >= 3


def _find_or_create_department(store, name: str, dry_run: bool):
    for dept in store.list_departments():
        if dept.name == name:
            return dept
    if dry_run:
        return None
    return store.create_department({"name": name, "description": "Created by bootstrap_admin"})


def bootstrap_admin(
    store,
    hasher,
    email: str,
    password: str,
    *,
    first_name: str = "Admin",
    last_name: str = "User",
    department: str = "Administration",
    dry_run: bool = False,
) -> dict:
    """Create an admin employee, or promote an existing one.

    Returns:
        dict with employee_id, email, and status ('created', 'promoted',
        'already_admin' or 'dry_run')
    """
    from personnel.service.auth import normalize_email
    from personnel.storage.models import Role

    email = normalize_email(email)
    existing = store.find_credential_by_email(email)

    if existing:
        if existing.role == Role.ADMIN:
            print(f"Employee {email} already exists as admin (id: {existing.id})")
            return {"employee_id": existing.id, "email": email, "status": "already_admin"}
        if dry_run:
            print(f"[DRY RUN] Would promote existing employee {email} to admin")
            return {"employee_id": existing.id, "email": email, "status": "dry_run"}
        store.update_employee(existing.id, {"role": Role.ADMIN})
        print(f"Promoted existing employee {email} to admin (id: {existing.id})")
        return {"employee_id": existing.id, "email": email, "status": "promoted"}

    dept = _find_or_create_department(store, department, dry_run)
    if dry_run:
        print(f"[DRY RUN] Would create admin employee: {email}")
        return {"employee_id": None, "email": email, "status": "dry_run"}

    employee = store.create_employee(
        {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "role": Role.ADMIN,
            "department_id": dept.id,
        },
        hasher.hash(password),
    )
    print(f"Created admin employee: {email} (id: {employee.id})")
    return {"employee_id": employee.id, "email": email, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap an admin employee for the personnel service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("ADMIN_EMAIL"),
        help="Admin email (or set ADMIN_EMAIL env var)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("ADMIN_PASSWORD"),
        help="Admin password (or set ADMIN_PASSWORD env var)",
    )
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    parser.add_argument(
        "--department",
        default="Administration",
        help="Department name; created when missing",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.email:
        print("Error: --email or ADMIN_EMAIL environment variable required")
        sys.exit(1)

    if not args.password:
        print("Error: --password or ADMIN_PASSWORD environment variable required")
        sys.exit(1)

    if not validate_password(args.password):
        print("Error: Password must be at least 12 characters with 3+ character classes")
        print("       (uppercase, lowercase, digits, special characters)")
        sys.exit(1)

    # The signing secret is not used here but Settings refuses to load without one
    if not os.environ.get("JWT_SECRET"):
        import secrets

        os.environ["JWT_SECRET"] = secrets.token_urlsafe(48)

    from personnel.config import get_settings
    from personnel.service.auth import build_password_hasher
    from personnel.storage.postgres import PostgresStore

    settings = get_settings()
    try:
        store = PostgresStore(settings.database_url, min_size=1, max_size=1)
        try:
            result = bootstrap_admin(
                store,
                build_password_hasher(settings),
                args.email,
                args.password,
                first_name=args.first_name,
                last_name=args.last_name,
                department=args.department,
                dry_run=args.dry_run,
            )
        finally:
            store.close()
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created":
        print("\nAdmin employee created successfully!")
        print(f"  Email: {result['email']}")
        print(f"  Employee ID: {result['employee_id']}")
    elif result["status"] == "promoted":
        print("\nExisting employee promoted to admin!")
    elif result["status"] == "already_admin":
        print("\nNo changes needed - employee is already an admin.")


if __name__ == "__main__":
    main()
