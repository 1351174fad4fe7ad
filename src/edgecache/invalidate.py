#!/usr/bin/env python3
"""
Cache Invalidation Command

Manual invalidation for operators and deploy hooks.

Usage:
    python -m edgecache.invalidate [--config PATH] keys [PREFIX]
    python -m edgecache.invalidate [--config PATH] delete PATH [PATH ...]
    python -m edgecache.invalidate [--config PATH] delete-all --yes

delete-all also purges the entire edge zone and needs --yes.
"""

import logging
import sys
from typing import List, Optional

from .cache import EdgeCache
from .config import load_config
from .errors import EdgeCacheError, PartialDeleteError, PurgeError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/edgecache.defaults.yml"


def parse_args(argv: List[str]):
    """Split argv into (config path, command, remaining args)."""
    args = list(argv)
    config_path = DEFAULT_CONFIG
    if len(args) >= 2 and args[0] == "--config":
        config_path = args[1]
        args = args[2:]
    if not args:
        return config_path, None, []
    return config_path, args[0], args[1:]


def run(cache: EdgeCache, command: Optional[str], args: List[str]) -> int:
    if command == "keys":
        prefix = args[0] if args else None
        for key in cache.keys(prefix):
            print(key)
        return 0

    if command == "delete":
        if not args:
            logger.error("delete needs at least one path")
            return 2
        deleted = cache.delete_many(args)
        logger.info(f"Deleted {len(deleted)} of {len(args)} paths")
        return 0

    if command == "delete-all":
        if "--yes" not in args:
            logger.error("delete-all purges the whole edge zone; re-run with --yes")
            return 2
        deleted = cache.delete_all()
        logger.info(f"Deleted {len(deleted)} entries and purged the edge zone")
        return 0

    print(__doc__)
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for manual invocation."""
    config_path, command, args = parse_args(sys.argv[1:] if argv is None else argv)
    if command is None:
        print(__doc__)
        return 2

    try:
        cache = EdgeCache.from_config(load_config(config_path))
        return run(cache, command, args)
    except PartialDeleteError as e:
        logger.error(f"{e.message}; still present: {', '.join(sorted(e.failed))}")
        return 1
    except PurgeError as e:
        logger.error(f"Origin entries deleted ({len(e.deleted)}) but edge purge failed: {e.message}")
        return 1
    except (EdgeCacheError, FileNotFoundError, ValueError) as e:
        logger.error(f"Invalidation failed: {e}")
        return 1


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    sys.exit(main())
