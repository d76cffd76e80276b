"""
Create a companion record for local testing.

Usage:
    python scripts/create_companion.py --name Elon --owner-id user_1 --owner-name Simon \
        --instructions-file elon.txt --seed-file elon_seed.txt
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import settings
from core import configure_logging, get_logger
from memory.conversation_store import ConversationStore
from memory.database_async import AsyncDatabase

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a companion")
    parser.add_argument("--name", required=True)
    parser.add_argument("--owner-id", required=True)
    parser.add_argument("--owner-name", required=True)
    parser.add_argument("--description", default="")
    parser.add_argument("--instructions-file", type=Path, required=True)
    parser.add_argument("--seed-file", type=Path, default=None)
    parser.add_argument("--src", default=None, help="Avatar image URL")
    return parser.parse_args()


async def main():
    args = parse_args()
    configure_logging(log_level="INFO")

    db = AsyncDatabase(settings.DATABASE_URL)
    store = ConversationStore(db)
    try:
        persona = await store.create_persona(
            user_id=args.owner_id,
            user_name=args.owner_name,
            name=args.name,
            description=args.description,
            instructions=args.instructions_file.read_text(encoding="utf-8"),
            seed=args.seed_file.read_text(encoding="utf-8") if args.seed_file else "",
            src=args.src,
        )
        print(persona.id)
    finally:
        await db.dispose()


if __name__ == "__main__":
    asyncio.run(main())
