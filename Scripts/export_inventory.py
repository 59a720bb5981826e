from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional

from Tree_Inventory.config import load_inventory_config
from Tree_Inventory.records import DefectEntity
from Tree_Inventory.reporting import build_inventory_report, today_date_str, write_inventory_csv, write_inventory_report
from Tree_Inventory.store import TreeStore


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export the stored tree inventory as JSON + CSV.")
    parser.add_argument("--config", default=None, help="Inventory config JSON (used for the database path).")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides --config).")
    parser.add_argument("--out-dir", default="data", help="Reports are written under <out-dir>/reports/<date>/.")
    parser.add_argument("--date", default=None, help="Report date folder (default: today, YYYY-MM-DD).")
    parser.add_argument("--tree-id", type=int, action="append", default=None, help="Only export these trees.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.db:
        db_path = args.db
    elif args.config:
        db_path = load_inventory_config(Path(args.config)).database_path
    else:
        parser.error("either --config or --db is required")

    store = TreeStore(db_path)
    try:
        store.initialize()
        trees = store.get_all_trees()
        if args.tree_id:
            wanted = set(args.tree_id)
            trees = [t for t in trees if t.id in wanted]
        if not trees:
            print("No trees to export.")
            return 1

        defects_by_tree: Dict[int, List[DefectEntity]] = {t.id: store.get_defects_by_tree_id(t.id) for t in trees}
    finally:
        store.close()

    date = args.date or today_date_str()
    out_dir = Path(args.out_dir)
    json_path = write_inventory_report(out_dir=out_dir, date=date, trees=trees, defects_by_tree=defects_by_tree)
    csv_path = write_inventory_csv(out_dir=out_dir, date=date, trees=trees, defects_by_tree=defects_by_tree)

    report = build_inventory_report(date, trees, defects_by_tree)
    print(f"Trees: {report.total_trees}  defects: {report.total_defects}  trees with defects: {report.trees_with_defects}")
    for taxon, count in report.taxon_counts.items():
        print(f"  {taxon}: {count}")
    print(f"Wrote {json_path}")
    print(f"Wrote {csv_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
