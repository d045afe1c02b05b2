"""lsmctl command-line entry point.

Usage:
    lsmctl get KEY [--fmt string|int64AsBytes|json] --dir PATH
    lsmctl list [--prefix P] [--limit N] [--offset N] --dir PATH
    lsmctl set KEY VALUE [--ttl DURATION] --dir PATH
    lsmctl delete KEY [KEY ...] --dir PATH
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING, Callable, TextIO

from ..core.access import EntryOptions, open_store
from ..core.codec import ValueFormat
from ..core.config import load_config
from ..core.errors import ConfigError, EngineError, KVError
from .duration import parse_duration

if TYPE_CHECKING:
    from ..core.access import KVStore

logger = logging.getLogger(__name__)

Handler = Callable[[argparse.Namespace, "KVStore"], None]

DEFAULT_LIST_LIMIT = 100


def setup_logging(verbosity: int) -> None:
    """Log to stderr; -v enables INFO and -vv DEBUG."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


def _duration_arg(text: str):
    try:
        return parse_duration(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per store operation."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--dir", required=True, help="Store directory")
    common.add_argument("--config", default=None, help="YAML file with engine settings")
    common.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log verbosity"
    )

    p = argparse.ArgumentParser(
        prog="lsmctl", description="Inspect and mutate an embedded key-value store"
    )
    sub = p.add_subparsers(dest="command", required=True)

    get = sub.add_parser("get", parents=[common], help="Print the value of a key")
    get.add_argument("key")
    get.add_argument(
        "--fmt",
        default=ValueFormat.STRING.value,
        choices=[f.value for f in ValueFormat],
        help="Display format of the value",
    )

    lst = sub.add_parser("list", parents=[common], help="List keys under a prefix")
    lst.add_argument("--prefix", default="", help="Only list keys starting with this prefix")
    lst.add_argument(
        "--limit", type=int, default=DEFAULT_LIST_LIMIT, help="Maximum number of keys to print"
    )
    lst.add_argument("--offset", type=int, default=0, help="Number of matching keys to skip")

    st = sub.add_parser("set", parents=[common], help="Write a key")
    st.add_argument("key")
    st.add_argument("value")
    st.add_argument(
        "--ttl", type=_duration_arg, default=None, help="Expire after this duration, e.g. 1h30m"
    )

    delete = sub.add_parser("delete", parents=[common], help="Delete one or more keys")
    delete.add_argument("keys", nargs="+")

    return p


def build_commands(out: TextIO) -> dict[str, Handler]:
    """Map each subcommand name to its handler, writing results to out."""

    def get(args: argparse.Namespace, store: KVStore) -> None:
        print(store.get(args.key, args.fmt), file=out)

    def list_keys(args: argparse.Namespace, store: KVStore) -> None:
        results, total = store.list_keys(args.prefix, args.limit, args.offset)
        for result in results:
            print(result, file=out)
        print(f"Total: {total}", file=out)

    def set_key(args: argparse.Namespace, store: KVStore) -> None:
        store.set(args.key, args.value, EntryOptions(ttl=args.ttl))
        logger.info(f"Set key {args.key}")

    def delete(args: argparse.Namespace, store: KVStore) -> None:
        store.delete(*args.keys)
        logger.info(f"Deleted {len(args.keys)} key(s)")

    return {
        "get": get,
        "list": list_keys,
        "set": set_key,
        "delete": delete,
    }


def main(argv: list[str] | None = None) -> int:
    """Run one store operation. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    commands = build_commands(sys.stdout)

    try:
        config = load_config(args.config, args.dir)
        with open_store(args.dir, config) as store:
            commands[args.command](args, store)
    except (KVError, EngineError, ConfigError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
