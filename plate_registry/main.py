"""
main.py — Command-line entry point for plate-registry.

Ties the modules together:

  config.yaml  →  RecordStore.from_config()  →  remote / SQLite / JSON tier
                    ├─ search / find / count
                    ├─ add / update / delete / clear
                    └─ CSV import / export, offline download / sync

Usage
─────
  python -m plate_registry.main search acme
  python -m plate_registry.main find "abc 123"
  python -m plate_registry.main add ABC-123 --company Acme
  python -m plate_registry.main import plates.csv
  python -m plate_registry.main -c config.yaml export out.csv
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import load_config
from .errors import RegistryError
from .records import PlateRecord
from .store import RecordStore, remote_from_config
from .transfer import export_records, import_rows, read_csv_source, write_csv

logger = logging.getLogger("plate-registry")


class PlateRegistryApp:
    """Loads configuration, sets up logging and opens the record store.

    Args:
        config_path: Path to config.yaml (or None for auto-discovery).
        store:       Pre-built store (skips backend selection; for tests).
    """

    def __init__(self, config_path=None, store: Optional[RecordStore] = None):
        self.cfg = load_config(config_path)
        self._setup_logging()
        self.store = store or RecordStore.from_config(self.cfg)

    # ------------------------------------------------------------------ #
    #  Logging setup
    # ------------------------------------------------------------------ #

    def _setup_logging(self):
        """Configure Python logging with console + optional file handlers."""
        lvl_name = self.cfg["logging"].get("log_level", "INFO").upper()
        lvl = getattr(logging, lvl_name, logging.INFO)

        fmt = logging.Formatter(
            "%(asctime)s  %(name)-24s  %(levelname)-7s  %(message)s"
        )

        root = logging.getLogger()
        root.setLevel(lvl)

        # Console handler on stderr so stdout stays clean for results
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(fmt)
        root.addHandler(sh)

        log_file = self.cfg["logging"].get("log_file")
        if log_file:
            fh = logging.FileHandler(log_file)
            fh.setFormatter(fmt)
            root.addHandler(fh)

    # ------------------------------------------------------------------ #
    #  Commands
    # ------------------------------------------------------------------ #

    def run(self, args: argparse.Namespace) -> int:
        """Dispatch one parsed command.  Returns the process exit code."""
        try:
            return getattr(self, "cmd_" + args.command)(args)
        except (RegistryError, OSError) as exc:
            logger.error("%s", exc)
            return 1

    def cmd_search(self, args) -> int:
        records = self.store.search(args.term)
        _print_records(records)
        print(f"{len(records)} records (total: {self.store.count()})")
        return 0

    def cmd_find(self, args) -> int:
        rec = self.store.find_by_identity(args.plate)
        if rec is None:
            print(f"Not found: {args.plate}")
            return 1
        _print_records([rec])
        return 0

    def cmd_count(self, args) -> int:
        print(self.store.count())
        return 0

    def cmd_add(self, args) -> int:
        rec = self.store.insert(args.plate, args.company, args.association, actor=args.actor)
        _print_records([rec])
        return 0

    def cmd_update(self, args) -> int:
        rec = self.store.update(_parse_id(args.id), args.plate, args.company, args.association)
        _print_records([rec])
        return 0

    def cmd_delete(self, args) -> int:
        self.store.delete(_parse_id(args.id))
        print(f"Deleted {args.id}")
        return 0

    def cmd_clear(self, args) -> int:
        if not args.yes:
            print("Refusing to delete every record without --yes")
            return 1
        removed = self.store.clear_all()
        print(f"Removed {removed} records")
        return 0

    def cmd_import(self, args) -> int:
        summary = import_rows(
            self.store,
            read_csv_source(args.file),
            skip_duplicates=not args.keep_duplicates,
            actor=args.actor,
        )
        print(
            f"{summary.source}: {summary.imported} imported, "
            f"{summary.duplicates} duplicates, {summary.errors} errors "
            f"({summary.total} rows)"
        )
        return 0

    def cmd_export(self, args) -> int:
        n = write_csv(args.file, export_records(self.store))
        print(f"Exported {n} records to {args.file}")
        return 0

    def cmd_offline(self, args) -> int:
        result = self.store.download_for_offline()
        print(result["message"])
        return 0 if result["success"] else 1

    def cmd_sync(self, args) -> int:
        remote = remote_from_config(self.cfg)
        if remote is None:
            print("Remote table is not configured")
            return 1
        result = self.store.sync_to_remote(remote)
        print(result["message"])
        return 0 if result["success"] else 1


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _parse_id(value: str):
    """Backends use integer ids; keep anything else as a string."""
    return int(value) if value.isdigit() else value


def _print_records(records: List[PlateRecord]):
    for r in records:
        print(f"{str(r.id):>6}  {r.plate:<12}  {r.company:<30}  {r.association}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Vehicle plate registry")
    ap.add_argument(
        "-c", "--config",
        default=None,
        help="Path to config.yaml (default: auto-discover)",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="List records, optionally filtered")
    p.add_argument("term", nargs="?", default=None)

    p = sub.add_parser("find", help="Find one plate however it is spelled")
    p.add_argument("plate")

    sub.add_parser("count", help="Number of records")

    p = sub.add_parser("add", help="Register a plate")
    p.add_argument("plate")
    p.add_argument("--company", default="")
    p.add_argument("--association", default="")
    p.add_argument("--actor", default=None)

    p = sub.add_parser("update", help="Change a record")
    p.add_argument("id")
    p.add_argument("plate")
    p.add_argument("--company", default="")
    p.add_argument("--association", default="")

    p = sub.add_parser("delete", help="Delete a record")
    p.add_argument("id")

    p = sub.add_parser("clear", help="Delete every record")
    p.add_argument("--yes", action="store_true")

    p = sub.add_parser("import", help="Import plates from a CSV file")
    p.add_argument("file")
    p.add_argument("--keep-duplicates", action="store_true",
                   help="Count duplicate plates as errors")
    p.add_argument("--actor", default=None)

    p = sub.add_parser("export", help="Export every record to a CSV file")
    p.add_argument("file")

    sub.add_parser("offline", help="Download the remote table to the local JSON file")
    sub.add_parser("sync", help="Replace the remote table with the local records")
    return ap


def main(argv=None) -> int:
    """Parse command-line arguments and run one command."""
    args = build_parser().parse_args(argv)
    return PlateRegistryApp(args.config).run(args)


if __name__ == "__main__":
    sys.exit(main())
