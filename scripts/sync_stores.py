"""
Reconcile the mirror store with the vector store from the command line.

Usage
-----
    python scripts/sync_stores.py status
    python scripts/sync_stores.py sync [--remove-orphans] [--dry-run]
    python scripts/sync_stores.py recreate

Prints the resulting report as JSON and exits with status 1 when the report
is unsuccessful, so it can be driven by cron or any other scheduler.
"""

import argparse
import asyncio
import logging
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from content_embeddings.config import get_settings
from content_embeddings.db import Database, MirrorStore, VectorStore
from content_embeddings.embeddings.embedder import Embedder
from content_embeddings.services import EmbeddingService, SyncService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at debug level")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Compare both stores without changing anything")

    sync = commands.add_parser("sync", help="Update the mirror store from the vector store")
    sync.add_argument(
        "--remove-orphans",
        action="store_true",
        help="Delete mirror entries that have no vector row",
    )
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Report planned actions without writing",
    )

    commands.add_parser("recreate", help="Rebuild every vector row from the mirror store")
    return parser


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    vector_db = Database(settings.database_url)
    mirror_url = settings.effective_mirror_database_url
    mirror_db = vector_db if mirror_url == settings.database_url else Database(mirror_url)

    await vector_db.init()
    await mirror_db.init()

    try:
        async with vector_db.session() as vector_session, mirror_db.session() as mirror_session:
            vector_store = VectorStore(vector_session)
            mirror_store = MirrorStore(mirror_session)
            embedding_service = EmbeddingService(
                mirror_store=mirror_store,
                vector_store=vector_store,
                embedder=Embedder(settings=settings),
                settings=settings,
            )
            service = SyncService(
                mirror_store=mirror_store,
                vector_store=vector_store,
                embedding_service=embedding_service,
                settings=settings,
            )

            if args.command == "status":
                result = await service.get_sync_status()
                ok = True
            elif args.command == "sync":
                result = await service.sync_from_vector_store(
                    remove_orphans=args.remove_orphans,
                    dry_run=args.dry_run,
                )
                ok = result.success
            else:
                result = await service.recreate_all_embeddings()
                ok = result.success

        print(result.model_dump_json(by_alias=True, indent=2))
        return 0 if ok else 1
    finally:
        await mirror_db.close()
        await vector_db.close()


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
