import re
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


YEAR_RE = re.compile(r"[1-9][0-9]{2}[0-9?]")

TEXT_FIELD = "text"
NUMERIC_FIELD = "numeric"

SAP_FIELDS = {
    "Author": TEXT_FIELD,
    "Name": TEXT_FIELD,
    "Date": NUMERIC_FIELD,
    "Stereo": NUMERIC_FIELD,
}


def field_mapping(stereo: bool = True) -> Dict[str, str]:
    """Field schema fixed at index-creation time."""
    mapping = dict(SAP_FIELDS)
    if not stereo:
        mapping.pop("Stereo")
    return mapping


class SapDocument(BaseModel):
    Author: str = Field(default="")
    Name: str = Field(default="")
    Date: str = Field(default="", max_length=4)
    Stereo: Optional[bool] = None

    @field_validator("Date")
    @classmethod
    def _year_token(cls, value: str) -> str:
        if value and not YEAR_RE.fullmatch(value):
            raise ValueError(f"not a year token: {value!r}")
        return value

    @property
    def year(self) -> Optional[int]:
        if not self.Date:
            return None
        return int(self.Date.replace("?", "0"))

    def to_row(self, doc_id: str) -> Dict[str, object]:
        return {
            "doc_id": doc_id,
            "Author": self.Author,
            "Name": self.Name,
            "Date": self.Date,
            "year": self.year,
            "Stereo": None if self.Stereo is None else int(self.Stereo),
        }

    def __str__(self) -> str:
        out = f"[Author:{self.Author},Name:{self.Name},Date:{self.Date}"
        if self.Stereo is not None:
            out += f",Stereo:{int(self.Stereo)}"
        return out + "]"
