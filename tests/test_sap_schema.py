import pytest
from pydantic import ValidationError

from sap_schema import SapDocument, field_mapping


def test_str_matches_listing_format():
    doc = SapDocument(Author="J. Doe", Name="Test Song", Date="1987", Stereo=True)
    assert str(doc) == "[Author:J. Doe,Name:Test Song,Date:1987,Stereo:1]"


def test_str_without_stereo_field():
    doc = SapDocument(Author="J. Doe", Name="Test Song", Date="")
    assert str(doc) == "[Author:J. Doe,Name:Test Song,Date:]"


@pytest.mark.parametrize("date,year", [("1987", 1987), ("198?", 1980), ("", None)])
def test_year_value(date, year):
    assert SapDocument(Date=date).year == year


@pytest.mark.parametrize("date", ["87", "0987", "19xx", "1987?"])
def test_rejects_non_year_date(date):
    with pytest.raises(ValidationError):
        SapDocument(Date=date)


def test_to_row():
    row = SapDocument(Author="A", Name="N", Date="199?", Stereo=False).to_row("/x.sap")
    assert row == {"doc_id": "/x.sap", "Author": "A", "Name": "N", "Date": "199?", "year": 1990, "Stereo": 0}


def test_field_mapping_variants():
    assert field_mapping() == {"Author": "text", "Name": "text", "Date": "numeric", "Stereo": "numeric"}
    assert "Stereo" not in field_mapping(stereo=False)
