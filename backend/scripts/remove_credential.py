"""
Remove a login credential by email (follow-up to an admin account deletion).

Cascading account deletion keeps the credential so the operator can decide
separately. This script removes it, and refuses while a profile with the same
user_id still exists.

Usage (from backend/):
  python -m scripts.remove_credential trader@example.com
  python -m scripts.remove_credential --email trader@example.com
"""

import asyncio
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db_context
from auth import normalize_email
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def remove_credential(db, email: str) -> bool:
    """
    Delete the credential for email (case-insensitive).
    Returns True if deleted, False if not found or a profile still exists.
    """
    email_lower = normalize_email(email)
    if not email_lower:
        logger.error("Email is required")
        return False

    credential = await db.credentials.find_one(
        {"email_lower": email_lower},
        {"_id": 0, "user_id": 1}
    )
    if not credential:
        logger.warning("No credential found with email: %s", email_lower)
        return False

    if await db.users.find_one({"user_id": credential["user_id"]}, {"_id": 0, "user_id": 1}):
        logger.error(
            "Profile %s still exists; delete the account from the admin console first",
            credential["user_id"]
        )
        return False

    await db.credentials.delete_one({"user_id": credential["user_id"]})
    logger.info("Credential removed: %s (user_id=%s)", email_lower, credential["user_id"])
    return True


async def run(email: str) -> bool:
    async with get_db_context() as db:
        return await remove_credential(db, email)


def main():
    parser = argparse.ArgumentParser(description="Remove a login credential left after account deletion")
    parser.add_argument("email", nargs="?", help="Account email")
    parser.add_argument("--email", dest="email_flag", help="Account email (alternative)")
    args = parser.parse_args()
    email = args.email or args.email_flag
    if not email:
        parser.error("Provide email as positional argument or --email")
        return 1
    ok = asyncio.run(run(email))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
