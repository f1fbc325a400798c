from dataclasses import dataclass
from typing import Dict, Tuple

from sap_schema import field_mapping


DEFAULT_INDEX_PATH = "asma.bleve"
DEFAULT_BATCH_SIZE = 50
DEFAULT_COMMIT_RETRIES = 3
SAP_EXTENSIONS = (".sap",)


class ConfigError(ValueError):
    pass


@dataclass
class IngestConfig:
    """Ingestion settings.

    ``batch_size`` is the number of staged documents that triggers a commit;
    0 commits every document on its own. ``stereo`` selects the field schema
    with or without the Stereo flag.
    """

    root: str
    index_path: str = DEFAULT_INDEX_PATH
    batch_size: int = DEFAULT_BATCH_SIZE
    stereo: bool = True
    strict: bool = False
    extensions: Tuple[str, ...] = SAP_EXTENSIONS
    commit_retries: int = DEFAULT_COMMIT_RETRIES
    show_progress: bool = False

    def validate(self) -> "IngestConfig":
        if not self.root:
            raise ConfigError("ASMA directory not specified")
        if not self.index_path:
            raise ConfigError("index path not specified")
        if self.batch_size < 0:
            raise ConfigError(f"batch size must be >= 0, got {self.batch_size}")
        if self.commit_retries < 1:
            raise ConfigError(f"commit retries must be >= 1, got {self.commit_retries}")
        if not self.extensions:
            raise ConfigError("no file extensions to index")
        return self

    @property
    def batched(self) -> bool:
        return self.batch_size > 0

    def mapping(self) -> Dict[str, str]:
        return field_mapping(self.stereo)


def is_sap_file(path: str, extensions: Tuple[str, ...] = SAP_EXTENSIONS) -> bool:
    return path.endswith(tuple(extensions))


def document_id(path: str, root: str) -> str:
    """Index key for ``path``: the walked path with the root string trimmed off."""
    if path.startswith(root):
        return path[len(root):]
    return path
