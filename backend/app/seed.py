# seed script: writes collaborator settings into admin_settings and ensures indexes
# values come from flags or SEED_* env vars, never from source
# run: python -m app.seed --sendgrid-from no-reply@therapii.app

import argparse
import asyncio
import logging
import os

from app.services.config_resolver import OPENAI_CONFIG_DOC, SENDGRID_CONFIG_DOC
from app.services.db import Database, db

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def build_admin_settings(args: argparse.Namespace) -> dict[str, dict]:
    """admin_settings documents to upsert, keyed by document id"""
    docs = {}
    if args.openai_key:
        docs[OPENAI_CONFIG_DOC] = {"api_key": args.openai_key.strip()}
    if args.sendgrid_key:
        docs[SENDGRID_CONFIG_DOC] = {
            "api_key": args.sendgrid_key.strip(),
            "api_key_id": (args.sendgrid_key_id or "").strip(),
            "from_email": (args.sendgrid_from or "").strip(),
            "enabled": not args.sendgrid_disabled,
        }
    return docs


async def seed(args: argparse.Namespace, database: Database = db):
    """upsert admin settings, skipping documents with no key supplied"""
    await database.connect()
    await database.ensure_indexes()

    docs = build_admin_settings(args)
    if not docs:
        logger.info("No keys supplied; admin settings left untouched")
    for name, fields in docs.items():
        await database.admin_settings.update_one({"_id": name}, {"$set": fields}, upsert=True)
        logger.info(f"Admin settings updated: {name}")

    await database.close()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed Therapii admin settings")
    parser.add_argument("--openai-key", default=os.getenv("SEED_OPENAI_API_KEY"))
    parser.add_argument("--sendgrid-key", default=os.getenv("SEED_SENDGRID_API_KEY"))
    parser.add_argument("--sendgrid-key-id", default=os.getenv("SEED_SENDGRID_API_KEY_ID"))
    parser.add_argument("--sendgrid-from", default=os.getenv("SEED_SENDGRID_FROM_EMAIL"))
    parser.add_argument("--sendgrid-disabled", action="store_true", help="store the sendgrid key but keep email off")
    return parser.parse_args(argv)


if __name__ == "__main__":
    asyncio.run(seed(parse_args()))
