"""
Admin password hash tool.
Generates the bcrypt ADMIN_PASSWORD_HASH for the .env file, or checks a
password against an existing hash.

Usage:
    nightlife-password            # generate a hash
    nightlife-password --check    # check a password against ADMIN_PASSWORD_HASH
"""
import argparse
import getpass
import sys

from nightlife.config import settings
from nightlife.utils.auth import hash_password, verify_password


def generate() -> int:
    print("=" * 60)
    print("Admin Password Hash Generator")
    print("=" * 60)
    print()
    print("Copy the output to your .env file as ADMIN_PASSWORD_HASH")
    print()

    password = getpass.getpass("Enter admin password: ")
    if not password:
        print("\nError: Password cannot be empty")
        return 1

    if password != getpass.getpass("Confirm password: "):
        print("\nError: Passwords do not match")
        return 1

    print("\nSuccess! Copy this line to your .env file:\n")
    print(f"ADMIN_PASSWORD_HASH={hash_password(password)}")
    print()
    print("Keep this hash secret and never commit it to version control!")
    return 0


def check(hash_value: str) -> int:
    if not hash_value:
        print("Error: no hash given and ADMIN_PASSWORD_HASH is not set")
        return 1

    password = getpass.getpass("Password to check: ")
    if verify_password(password, hash_value):
        print("Password matches")
        return 0

    print("Password does NOT match")
    return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate or check the admin password hash")
    parser.add_argument("--check", action="store_true", help="check a password instead of generating a hash")
    parser.add_argument("--hash", dest="hash_value", default=None, help="hash to check (defaults to ADMIN_PASSWORD_HASH)")
    args = parser.parse_args(argv)

    if args.check:
        return check(args.hash_value or settings.ADMIN_PASSWORD_HASH)
    return generate()


if __name__ == "__main__":
    sys.exit(main())
