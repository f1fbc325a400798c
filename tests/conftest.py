"""
Pytest configuration and shared fixtures
"""

import sys
from pathlib import Path

import pytest

# scripts/ is not a package; make manage_index importable
REPO_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(REPO_ROOT / "scripts"))


def sap_bytes(author="J. Doe", name="Test Song", date="1987", stereo=False, payload=b"\x00\x06\x00\x10"):
    lines = [
        b"SAP",
        b'AUTHOR "' + author.encode("utf-8") + b'"',
        b'NAME "' + name.encode("utf-8") + b'"',
        b'DATE "' + date.encode("utf-8") + b'"',
        b"TYPE B",
    ]
    if stereo:
        lines.append(b"STEREO")
    return b"\r\n".join(lines) + b"\r\n" + b"\xff\xff" + payload


@pytest.fixture
def write_sap():
    def _write(path: Path, **fields) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(sap_bytes(**fields))
        return path

    return _write
