import argparse
import logging
import os
from dataclasses import dataclass, field
from typing import Iterator, Optional

from tqdm import tqdm

from ingest_core import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COMMIT_RETRIES,
    DEFAULT_INDEX_PATH,
    ConfigError,
    IngestConfig,
    document_id,
    is_sap_file,
)
from lexical_index import Batch, IndexCommitError, IndexCreateError, SapIndex, open_or_create
from sap_header import MalformedHeaderError, ReadError, parse_header, read_header

logger = logging.getLogger("sap-index")


@dataclass
class IngestStats:
    files_seen: int = 0
    documents: int = 0
    read_errors: int = 0
    malformed: int = 0
    commits: int = 0

    def summary(self) -> str:
        return (
            f"SUMMARY files_seen={self.files_seen} documents={self.documents} "
            f"read_errors={self.read_errors} malformed={self.malformed} commits={self.commits}"
        )


@dataclass
class WalkState:
    batch: Optional[Batch]
    stats: IngestStats = field(default_factory=IngestStats)


def _log_walk_error(err: OSError) -> None:
    logger.warning("cannot list %s: %s", err.filename, err.strerror or err)


def iter_entries(root: str) -> Iterator[str]:
    """Yield every file path under ``root`` in filesystem order."""
    for path, _dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        for fn in filenames:
            yield os.path.join(path, fn)


class SapIngestPipeline:
    def __init__(self, index: SapIndex, config: IngestConfig):
        self.index = index
        self.config = config

    def _commit(self, state: WalkState) -> None:
        self.index.commit(state.batch)
        state.stats.commits += 1
        state.batch = self.index.new_batch()

    def visit(self, path: str, state: WalkState) -> None:
        if not is_sap_file(path, self.config.extensions):
            return
        state.stats.files_seen += 1
        doc_id = document_id(path, self.config.root)
        try:
            header = read_header(path)
        except ReadError as ex:
            logger.debug("skipping %s", ex)
            state.stats.read_errors += 1
            return
        try:
            doc = parse_header(header, stereo=self.config.stereo, strict=self.config.strict)
        except MalformedHeaderError as ex:
            logger.warning("skipping %s: %s", path, ex)
            state.stats.malformed += 1
            return
        tqdm.write(str(doc))
        if state.batch is None:
            self.index.index(doc_id, doc)
            state.stats.commits += 1
        else:
            state.batch.index(doc_id, doc)
            if len(state.batch) >= self.config.batch_size:
                self._commit(state)
        state.stats.documents += 1

    def run(self) -> IngestStats:
        """Walk the configured root, index every SAP file, flush the last batch."""
        state = WalkState(batch=self.index.new_batch() if self.config.batched else None)
        entries = tqdm(
            iter_entries(self.config.root), desc="Indexing", unit="file", disable=not self.config.show_progress
        )
        for path in entries:
            self.visit(path, state)
        if state.batch is not None and len(state.batch):
            self._commit(state)
        return state.stats


def main():
    ap = argparse.ArgumentParser(description="Index SAP file headers from an ASMA directory tree")
    ap.add_argument("-i", dest="index", default=DEFAULT_INDEX_PATH, help="The name of the index directory")
    ap.add_argument("-a", dest="asma", default="", help="Existing asma directory taken from the official repository")
    ap.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Documents per commit (0 = commit each document)")
    ap.add_argument("--commit-retries", type=int, default=DEFAULT_COMMIT_RETRIES)
    ap.add_argument("--no-stereo", action="store_true", help="Create the index without the Stereo field")
    ap.add_argument("--strict", action="store_true", help="Also skip files missing any one of the author/name/date lines")
    ap.add_argument("--progress", action="store_true", help="Show a progress bar on stderr")
    args = ap.parse_args()

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    config = IngestConfig(
        root=args.asma,
        index_path=args.index,
        batch_size=args.batch_size,
        stereo=not args.no_stereo,
        strict=args.strict,
        commit_retries=args.commit_retries,
        show_progress=args.progress,
    )
    try:
        config.validate()
    except ConfigError as ex:
        raise SystemExit(str(ex))
    if not os.path.isdir(config.root):
        raise SystemExit(f"Root does not exist or is not a directory: {config.root}")

    try:
        index = open_or_create(config.index_path, config.mapping(), commit_retries=config.commit_retries)
    except IndexCreateError as ex:
        raise SystemExit(f"Unable to create index file: {ex}")

    with index:
        try:
            stats = SapIngestPipeline(index, config).run()
        except IndexCommitError as ex:
            logger.error("commit failed for ids: %s", ", ".join(ex.doc_ids))
            raise SystemExit(f"Index commit failed: {ex}")

    logger.info(stats.summary())


if __name__ == "__main__":
    main()
