"""
Maintenance CLI tool for LayerSync.

This tool inspects and repairs a LayerSync database:
- family: Print the resolved family of a model
- backfill-attributes: Project every canonical attribute into each layer
  object projection of its object that lacks one
- orphans: List layer relationships whose endpoints are gone or live in
  another model
- stats: Row counts per table

Usage:
    layersync-admin --data-dir /var/lib/layersync family 12
    layersync-admin --data-dir /var/lib/layersync backfill-attributes
    layersync-admin --data-dir /var/lib/layersync orphans

Invariants:
    - Orphans cause non-zero exit code
    - Output is JSON (sorted keys) so it can be parsed in scripts
    - backfill-attributes only creates, never updates or deletes

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from ..errors import LayerSyncError
from ..service.models import get_model_family
from ..store.model_store import ModelStore
from ..sync.cache import SyncCache
from ..sync.projections import ensure_model_attribute, find_model_attribute

logger = logging.getLogger(__name__)


class MaintenanceCLI:
    """Maintenance commands over one ModelStore.

    Example:
        >>> cli = MaintenanceCLI(store)
        >>> created = await cli.backfill_attributes()
        >>> issues = await cli.orphans()
    """

    def __init__(self, store: ModelStore) -> None:
        self.store = store

    async def family(self, model_id: int) -> dict[str, Any]:
        """Resolved family of a model.

        Raises:
            NotFoundError: If the model does not exist
        """
        family = await get_model_family(self.store, model_id)
        return family.to_dict()

    async def backfill_attributes(self) -> int:
        """Create attribute projections missing from layer object projections.

        Returns:
            Number of attribute projections created
        """
        cache = SyncCache(self.store)
        models_by_id = {model.id: model for model in await cache.models()}
        created = 0

        for model_object in await self.store.list_model_objects():
            model = models_by_id.get(model_object.model_id)
            if model is None:
                logger.warning(
                    f"Model object {model_object.id} points at missing model "
                    f"{model_object.model_id}"
                )
                continue
            for attribute in await cache.attributes(model_object.object_id):
                existing = await find_model_attribute(
                    cache, model.id, model_object.id, attribute.id
                )
                if existing is not None:
                    continue
                if await ensure_model_attribute(cache, model, model_object, attribute.id):
                    created += 1

        logger.info(f"Backfilled {created} attribute projections")
        return created

    async def orphans(self) -> list[dict[str, Any]]:
        return await self.store.find_orphaned_relationships()

    async def stats(self) -> dict[str, int]:
        return await self.store.get_stats()


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


async def _run(args: argparse.Namespace) -> int:
    store = ModelStore(args.data_dir, db_name=args.db_name)
    await store.initialize()
    cli = MaintenanceCLI(store)

    if args.command == "family":
        _print_json(await cli.family(args.model_id))
        return 0

    if args.command == "backfill-attributes":
        created = await cli.backfill_attributes()
        _print_json({"created": created})
        return 0

    if args.command == "orphans":
        issues = await cli.orphans()
        _print_json(issues)
        if issues:
            print(f"Found {len(issues)} orphaned relationship endpoint(s)", file=sys.stderr)
            return 1
        return 0

    _print_json(await cli.stats())
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the maintenance tool."""
    parser = argparse.ArgumentParser(description="LayerSync maintenance tool")
    parser.add_argument(
        "--data-dir",
        default=os.getenv("DATA_DIR", "/var/lib/layersync"),
        help="Directory holding the SQLite database",
    )
    parser.add_argument(
        "--db-name", default=os.getenv("DB_NAME", "layersync.db"), help="Database file name"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    family_parser = subparsers.add_parser("family", help="Print the resolved family of a model")
    family_parser.add_argument("model_id", type=int, help="Any member of the family")

    subparsers.add_parser(
        "backfill-attributes", help="Create missing attribute projections"
    )
    subparsers.add_parser("orphans", help="List layer relationships with broken endpoints")
    subparsers.add_parser("stats", help="Row counts per table")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        exit_code = asyncio.run(_run(args))
    except LayerSyncError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
