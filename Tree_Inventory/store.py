"""
SQLite store for tree and defect records.

Every write runs as one transaction under a lock, so a save, update or
delete is never observed half-applied. Deleting a tree cascades to its
defects.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Iterable, List, Optional

from .records import BoundingBox, DefectEntity, TreeEntity

EXPECTED_SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


class TreeStore:
    """
    Record store with two tables:
    - trees: one row per confirmed tree, auxiliary images serialized as JSON
    - defects: boxes found on a tree's images, `tree_id` -> trees(id) ON DELETE CASCADE
    """

    def __init__(self, database_path: str):
        self.database_path = database_path
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        if database_path != ":memory:":
            db_dir = os.path.dirname(database_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        if self.conn is None:
            self.conn = sqlite3.connect(self.database_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON")
            if self.database_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode = WAL")
        return self.conn

    def initialize(self) -> None:
        with self._lock:
            conn = self._get_connection()
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS schema_meta (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        schema_version INTEGER NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS trees (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        image_path TEXT NOT NULL,
                        bbox_x REAL NOT NULL,
                        bbox_y REAL NOT NULL,
                        bbox_width REAL NOT NULL,
                        bbox_height REAL NOT NULL,
                        date_taken TEXT NOT NULL,
                        description TEXT DEFAULT '',
                        additional_images TEXT DEFAULT '[]',
                        crop_path TEXT,
                        taxon_name TEXT
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS defects (
                        defect_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        tree_id INTEGER NOT NULL,
                        xtl REAL NOT NULL,
                        ytl REAL NOT NULL,
                        xbr REAL NOT NULL,
                        ybr REAL NOT NULL,
                        image_path TEXT NOT NULL,
                        crop_path TEXT NOT NULL,
                        defect_type TEXT NOT NULL,
                        FOREIGN KEY (tree_id) REFERENCES trees(id) ON DELETE CASCADE
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_defects_tree_id ON defects(tree_id)")
                conn.execute(
                    "INSERT OR IGNORE INTO schema_meta (id, schema_version) VALUES (1, ?)",
                    (EXPECTED_SCHEMA_VERSION,),
                )
            row = conn.execute("SELECT schema_version FROM schema_meta WHERE id = 1").fetchone()
            if row["schema_version"] != EXPECTED_SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['schema_version']} in {self.database_path}"
                )
        logger.info("Tree store ready at %s", self.database_path)

    def close(self) -> None:
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    # ------------------------------------------------------------------ #
    # Trees
    # ------------------------------------------------------------------ #
    @staticmethod
    def _tree_params(tree: TreeEntity) -> tuple:
        box = tree.bounding_box
        return (
            tree.image_path,
            box.x,
            box.y,
            box.width,
            box.height,
            tree.date_taken,
            tree.description,
            json.dumps(list(tree.additional_images)),
            tree.crop_path,
            tree.taxon_name,
        )

    _INSERT_TREE = """
        INSERT INTO trees (image_path, bbox_x, bbox_y, bbox_width, bbox_height,
                           date_taken, description, additional_images, crop_path, taxon_name)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    @staticmethod
    def _row_to_tree(row: sqlite3.Row) -> TreeEntity:
        return TreeEntity(
            id=row["id"],
            image_path=row["image_path"],
            bounding_box=BoundingBox(
                x=row["bbox_x"],
                y=row["bbox_y"],
                width=row["bbox_width"],
                height=row["bbox_height"],
            ),
            date_taken=row["date_taken"],
            description=row["description"] or "",
            additional_images=json.loads(row["additional_images"] or "[]"),
            crop_path=row["crop_path"] or None,
            taxon_name=row["taxon_name"],
        )

    def insert_tree(self, tree: TreeEntity) -> int:
        return self.insert_trees([tree])[0]

    def insert_trees(self, trees: Iterable[TreeEntity]) -> List[int]:
        """
        Insert a batch in one transaction; either every tree is stored or none.
        Assigns `id` on the passed entities.
        """

        batch = list(trees)
        ids: List[int] = []
        with self._lock:
            conn = self._get_connection()
            with conn:
                for tree in batch:
                    cur = conn.execute(self._INSERT_TREE, self._tree_params(tree))
                    ids.append(int(cur.lastrowid))
        for tree, tree_id in zip(batch, ids):
            tree.id = tree_id
        return ids

    def get_all_trees(self) -> List[TreeEntity]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM trees ORDER BY date_taken DESC, id ASC"
            ).fetchall()
        return [self._row_to_tree(r) for r in rows]

    def get_tree(self, tree_id: int) -> Optional[TreeEntity]:
        with self._lock:
            row = self._get_connection().execute("SELECT * FROM trees WHERE id = ?", (tree_id,)).fetchone()
        return self._row_to_tree(row) if row else None

    def update_tree(
        self,
        tree_id: int,
        *,
        description: Optional[str] = None,
        additional_images: Optional[List[str]] = None,
        taxon_name: Optional[str] = None,
        crop_path: Optional[str] = None,
    ) -> bool:
        """
        Update the given fields with a single statement. Returns False when the tree does not exist.
        """

        fields = []
        values: list = []
        if description is not None:
            fields.append("description = ?")
            values.append(description)
        if additional_images is not None:
            fields.append("additional_images = ?")
            values.append(json.dumps(list(additional_images)))
        if taxon_name is not None:
            fields.append("taxon_name = ?")
            values.append(taxon_name)
        if crop_path is not None:
            fields.append("crop_path = ?")
            values.append(crop_path)

        with self._lock:
            conn = self._get_connection()
            if not fields:
                return conn.execute("SELECT 1 FROM trees WHERE id = ?", (tree_id,)).fetchone() is not None
            values.append(tree_id)
            with conn:
                cur = conn.execute(f"UPDATE trees SET {', '.join(fields)} WHERE id = ?", values)
            return cur.rowcount > 0

    def append_additional_image(self, tree_id: int, image_path: str) -> Optional[List[str]]:
        return self._edit_additional_images(tree_id, lambda images: images + [image_path])

    def remove_additional_image(self, tree_id: int, image_path: str) -> Optional[List[str]]:
        return self._edit_additional_images(tree_id, lambda images: [p for p in images if p != image_path])

    def _edit_additional_images(self, tree_id: int, edit) -> Optional[List[str]]:
        with self._lock:
            conn = self._get_connection()
            with conn:
                row = conn.execute("SELECT additional_images FROM trees WHERE id = ?", (tree_id,)).fetchone()
                if row is None:
                    return None
                images = edit(json.loads(row["additional_images"] or "[]"))
                conn.execute(
                    "UPDATE trees SET additional_images = ? WHERE id = ?",
                    (json.dumps(images), tree_id),
                )
        return images

    def delete_tree(self, tree_id: int) -> bool:
        with self._lock:
            conn = self._get_connection()
            with conn:
                cur = conn.execute("DELETE FROM trees WHERE id = ?", (tree_id,))
        return cur.rowcount > 0

    def clear_all_trees(self) -> int:
        with self._lock:
            conn = self._get_connection()
            with conn:
                cur = conn.execute("DELETE FROM trees")
        logger.info("Cleared %d tree(s) from %s", cur.rowcount, self.database_path)
        return cur.rowcount

    # ------------------------------------------------------------------ #
    # Defects
    # ------------------------------------------------------------------ #
    def replace_defects(self, tree_id: int, defects: Iterable[DefectEntity]) -> List[DefectEntity]:
        """
        Drop every stored defect of `tree_id` and insert `defects`, in one transaction.
        """

        batch = list(defects)
        for d in batch:
            if d.tree_id != tree_id:
                raise ValueError(f"Defect belongs to tree {d.tree_id}, not {tree_id}")

        with self._lock:
            conn = self._get_connection()
            with conn:
                conn.execute("DELETE FROM defects WHERE tree_id = ?", (tree_id,))
                for d in batch:
                    cur = conn.execute(
                        """
                        INSERT INTO defects (tree_id, xtl, ytl, xbr, ybr, image_path, crop_path, defect_type)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (d.tree_id, d.xtl, d.ytl, d.xbr, d.ybr, d.image_path, d.crop_path, d.defect_type),
                    )
                    d.defect_id = int(cur.lastrowid)
        return batch

    def get_defects_by_tree_id(self, tree_id: int) -> List[DefectEntity]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT * FROM defects WHERE tree_id = ? ORDER BY defect_id ASC", (tree_id,)
            ).fetchall()
        return [
            DefectEntity(
                defect_id=r["defect_id"],
                tree_id=r["tree_id"],
                xtl=r["xtl"],
                ytl=r["ytl"],
                xbr=r["xbr"],
                ybr=r["ybr"],
                image_path=r["image_path"],
                crop_path=r["crop_path"],
                defect_type=r["defect_type"],
            )
            for r in rows
        ]
