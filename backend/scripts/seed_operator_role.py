"""
Idempotent operator role seed.
Grants ROLE_OWNER to the account whose email equals OPERATOR_EMAIL. The server
runs the same seed at startup; use this after changing OPERATOR_EMAIL without
a restart.

Usage (from backend/):
  python -m scripts.seed_operator_role
"""
import asyncio
import sys
from pathlib import Path

# Ensure backend root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


async def main():
    from database import database
    from services.role_service import run_seed_operator_role

    await database.connect()
    try:
        result = await run_seed_operator_role()
        print(f"Seed: {result['action']} - {result['message']}")
        if result.get("user_id"):
            print(f"  user_id: {result['user_id']}")
    finally:
        await database.close()


if __name__ == "__main__":
    asyncio.run(main())
