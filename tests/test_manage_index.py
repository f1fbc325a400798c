import manage_index
from lexical_index import open_or_create
from sap_schema import SapDocument, field_mapping


def test_status_reports_documents(tmp_path, capsys):
    path = tmp_path / "asma.bleve"
    with open_or_create(str(path), field_mapping()) as idx:
        idx.index("/a.sap", SapDocument(Author="A", Name="N", Date="1990", Stereo=False))
    manage_index.main(["status", "-i", str(path)])
    out = capsys.readouterr().out
    assert "Documents: 1" in out
    assert "Stereo=numeric" in out


def test_status_on_missing_index(tmp_path, capsys):
    manage_index.main(["status", "-i", str(tmp_path / "missing.bleve")])
    out = capsys.readouterr().out
    assert "missing" in out
    assert "unusable" in out


def test_clear_removes_index(tmp_path, capsys):
    path = tmp_path / "asma.bleve"
    open_or_create(str(path), field_mapping()).close()
    manage_index.main(["clear", "-i", str(path)])
    assert not path.exists()
    manage_index.main(["clear", "-i", str(path)])
    assert "Nothing to remove" in capsys.readouterr().out
