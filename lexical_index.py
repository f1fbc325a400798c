import json
import logging
import os
import shutil
import sqlite3
import time
from typing import Dict, Iterable, List, Optional

from sap_schema import TEXT_FIELD, SapDocument, field_mapping

logger = logging.getLogger(__name__)

META_FILE = "index_meta.json"
STORE_FILE = "store.db"
STORAGE_KIND = "sqlite-fts5"
SCHEMA_VERSION = 1


class IndexOpenError(RuntimeError):
    pass


class IndexCreateError(RuntimeError):
    pass


class IndexCommitError(RuntimeError):
    def __init__(self, doc_ids: List[str], cause: Exception):
        super().__init__(f"commit of {len(doc_ids)} documents failed: {cause}")
        self.doc_ids = doc_ids


def _fts_create_sql(mapping: Dict[str, str]) -> str:
    columns = [name for name, kind in mapping.items() if kind == TEXT_FIELD]
    columns += ["doc_id UNINDEXED", "Date UNINDEXED"]
    if "Stereo" in mapping:
        columns.append("Stereo UNINDEXED")
    body = ",\n    ".join(columns)
    return f"""
CREATE VIRTUAL TABLE IF NOT EXISTS sap_fts USING fts5(
    {body},
    tokenize = 'unicode61 remove_diacritics 2'
);
"""


NUMERIC_CREATE_SQL = """
CREATE TABLE IF NOT EXISTS sap_numeric (
    doc_id TEXT PRIMARY KEY,
    year INTEGER,
    stereo INTEGER
);
"""

NUMERIC_YEAR_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_sap_numeric_year ON sap_numeric(year);"


def _connect(db_path: str) -> sqlite3.Connection:
    last_err = None
    for attempt in range(3):
        try:
            conn = sqlite3.connect(db_path)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            return conn
        except sqlite3.OperationalError as ex:
            last_err = ex
            if "unable to open database file" in str(ex).lower():
                time.sleep(0.5 * (attempt + 1))
                continue
            raise
    raise last_err


def read_meta(path: str) -> Dict[str, object]:
    with open(os.path.join(path, META_FILE), encoding="utf-8") as fh:
        return json.load(fh)


class Batch:
    """Documents staged for one atomic commit."""

    def __init__(self) -> None:
        self._docs: Dict[str, SapDocument] = {}
        self.committed = False

    def index(self, doc_id: str, doc: SapDocument) -> None:
        if self.committed:
            raise RuntimeError("batch already committed")
        self._docs[doc_id] = doc

    def ids(self) -> List[str]:
        return list(self._docs)

    def items(self):
        return self._docs.items()

    def __len__(self) -> int:
        return len(self._docs)


class SapIndex:
    """Persistent SAP index: a directory with a mapping file and an FTS store.

    Use as a context manager:

        with open_or_create("asma.bleve", field_mapping()) as idx:
            batch = idx.new_batch()
            batch.index("/Games/x.sap", doc)
            idx.commit(batch)
    """

    def __init__(self, path: str, conn: sqlite3.Connection, mapping: Dict[str, str], commit_retries: int = 3):
        self.path = path
        self.conn: Optional[sqlite3.Connection] = conn
        self.mapping = mapping
        self.commit_retries = max(1, commit_retries)

    @property
    def has_stereo(self) -> bool:
        return "Stereo" in self.mapping

    @classmethod
    def open(cls, path: str, mapping: Optional[Dict[str, str]] = None, **kwargs) -> "SapIndex":
        try:
            meta = read_meta(path)
        except (OSError, ValueError) as ex:
            raise IndexOpenError(f"cannot open index {path}: {ex}") from ex
        if meta.get("storage") != STORAGE_KIND or meta.get("schema_version") != SCHEMA_VERSION:
            raise IndexOpenError(f"unsupported index format in {path}")
        stored = meta.get("mapping") or {}
        if mapping is not None and stored != mapping:
            raise IndexOpenError(f"index {path} has mapping {stored}, expected {mapping}")
        db_path = os.path.join(path, STORE_FILE)
        if not os.path.exists(db_path):
            raise IndexOpenError(f"index {path} has no {STORE_FILE}")
        try:
            conn = _connect(db_path)
        except sqlite3.Error as ex:
            raise IndexOpenError(f"cannot open index {path}: {ex}") from ex
        return cls(path, conn, stored, **kwargs)

    @classmethod
    def create(cls, path: str, mapping: Optional[Dict[str, str]] = None, **kwargs) -> "SapIndex":
        mapping = dict(mapping or field_mapping())
        try:
            os.makedirs(path)
        except OSError as ex:
            raise IndexCreateError(f"cannot create index {path}: {ex}") from ex
        conn = None
        try:
            conn = _connect(os.path.join(path, STORE_FILE))
            conn.execute(_fts_create_sql(mapping))
            conn.execute(NUMERIC_CREATE_SQL)
            conn.execute(NUMERIC_YEAR_INDEX_SQL)
            conn.commit()
            meta = {"storage": STORAGE_KIND, "schema_version": SCHEMA_VERSION, "mapping": mapping}
            with open(os.path.join(path, META_FILE), "w", encoding="utf-8") as fh:
                json.dump(meta, fh, indent=2)
        except (OSError, sqlite3.Error) as ex:
            if conn is not None:
                conn.close()
            shutil.rmtree(path, ignore_errors=True)
            raise IndexCreateError(f"cannot create index {path}: {ex}") from ex
        logger.info("created index %s with fields %s", path, ", ".join(mapping))
        return cls(path, conn, mapping, **kwargs)

    def new_batch(self) -> Batch:
        return Batch()

    def _write(self, items: Iterable) -> None:
        cur = self.conn.cursor()
        fts_rows = []
        numeric_rows = []
        ids = []
        for doc_id, doc in items:
            row = doc.to_row(doc_id)
            ids.append((doc_id,))
            stereo = row["Stereo"] if self.has_stereo else None
            if self.has_stereo:
                fts_rows.append((row["Author"], row["Name"], doc_id, row["Date"], stereo))
            else:
                fts_rows.append((row["Author"], row["Name"], doc_id, row["Date"]))
            numeric_rows.append((doc_id, row["year"], stereo))
        cur.executemany("DELETE FROM sap_fts WHERE doc_id = ?", ids)
        cur.executemany("DELETE FROM sap_numeric WHERE doc_id = ?", ids)
        if self.has_stereo:
            cur.executemany(
                "INSERT INTO sap_fts (Author, Name, doc_id, Date, Stereo) VALUES (?, ?, ?, ?, ?)",
                fts_rows,
            )
        else:
            cur.executemany("INSERT INTO sap_fts (Author, Name, doc_id, Date) VALUES (?, ?, ?, ?)", fts_rows)
        cur.executemany("INSERT INTO sap_numeric (doc_id, year, stereo) VALUES (?, ?, ?)", numeric_rows)

    def commit(self, batch: Batch) -> int:
        """Apply every staged document in one transaction. Returns the count.

        Retries on SQLite errors with linear back-off, then raises
        IndexCommitError carrying the batch's ids.
        """
        if batch.committed:
            raise RuntimeError("batch already committed")
        items = list(batch.items())
        batch.committed = True
        if not items:
            return 0
        last_err = None
        for attempt in range(self.commit_retries):
            try:
                self._write(items)
                self.conn.commit()
                logger.debug("committed %d documents to %s", len(items), self.path)
                return len(items)
            except sqlite3.Error as ex:
                self.conn.rollback()
                last_err = ex
                logger.warning("commit attempt %d/%d failed: %s", attempt + 1, self.commit_retries, ex)
                if attempt + 1 < self.commit_retries:
                    time.sleep(0.5 * (attempt + 1))
        raise IndexCommitError([doc_id for doc_id, _ in items], last_err)

    def index(self, doc_id: str, doc: SapDocument) -> None:
        batch = self.new_batch()
        batch.index(doc_id, doc)
        self.commit(batch)

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM sap_fts").fetchone()[0]

    def get(self, doc_id: str) -> Optional[SapDocument]:
        """Fetch a stored document by id."""
        cur = self.conn.cursor()
        cur.row_factory = sqlite3.Row
        row = cur.execute("SELECT * FROM sap_fts WHERE doc_id = ?", (doc_id,)).fetchone()
        if row is None:
            return None
        data = dict(row)
        stereo = data.get("Stereo")
        return SapDocument(
            Author=data["Author"],
            Name=data["Name"],
            Date=data["Date"],
            Stereo=None if stereo is None else bool(stereo),
        )

    def close(self) -> None:
        if self.conn is not None:
            try:
                self.conn.close()
            finally:
                self.conn = None

    def __enter__(self) -> "SapIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_or_create(path: str, mapping: Optional[Dict[str, str]] = None, **kwargs) -> SapIndex:
    """Open the index at ``path``; create it with ``mapping`` if that fails.

    IndexCreateError propagates when neither works.
    """
    try:
        return SapIndex.open(path, mapping, **kwargs)
    except IndexOpenError as ex:
        logger.info("%s; creating a new index", ex)
    return SapIndex.create(path, mapping, **kwargs)
