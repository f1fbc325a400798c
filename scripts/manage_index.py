#!/usr/bin/env python3
"""Inspect or remove a SAP index directory.

Usage examples:

    # Show size, field mapping and document count
    python scripts/manage_index.py status -i asma.bleve

    # Remove the index (the next ingest run re-creates it)
    python scripts/manage_index.py clear -i asma.bleve
"""

import argparse
import shutil
import sys
from pathlib import Path

# Ensure repo root is on sys.path so we can import lexical_index when invoked as a file
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingest_core import DEFAULT_INDEX_PATH  # noqa: E402
from lexical_index import IndexOpenError, SapIndex  # noqa: E402

DEFAULT_INDEX = Path(DEFAULT_INDEX_PATH)


def _human_size(path: Path) -> str:
    if not path.exists():
        return "missing"
    if path.is_file():
        size = path.stat().st_size
    else:
        size = sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024 or unit == "TB":
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def cmd_status(args: argparse.Namespace) -> None:
    print(f"Index    : {args.index.resolve()} ({_human_size(args.index)})")
    try:
        idx = SapIndex.open(str(args.index))
    except IndexOpenError as ex:
        print(f"Status   : unusable ({ex})")
        return
    with idx:
        print(f"Fields   : {', '.join(f'{k}={v}' for k, v in idx.mapping.items())}")
        print(f"Documents: {idx.count()}")


def cmd_clear(args: argparse.Namespace) -> None:
    if not args.index.exists():
        print(f"Nothing to remove: {args.index}")
        return
    if args.index.is_file():
        args.index.unlink()
    else:
        shutil.rmtree(args.index)
    print(f"Removed {args.index}")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Manage a SAP header index")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show index size, fields and document count")
    status.add_argument("-i", "--index", type=Path, default=DEFAULT_INDEX)
    status.set_defaults(func=cmd_status)

    clear = sub.add_parser("clear", help="Remove the index directory (re-created on next ingest)")
    clear.add_argument("-i", "--index", type=Path, default=DEFAULT_INDEX)
    clear.set_defaults(func=cmd_clear)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
