import json

import pytest

from dsb_vertretungsplan.cli import main


FRAME = """<html><body>
<table class="mon_head"><tr><td>Schule</td><td>Stand: 19.09.2025 09:04</td></tr></table>
<div class="mon_title">{date}</div>
<table class="mon_list">
<tr><th>Stunde</th><th>Vertreter</th><th>Fach</th><th>statt Fach</th><th>Raum</th><th>statt Raum</th><th>Text</th></tr>
<tr><td colspan="7">{klasse}</td></tr>
<tr><td>3</td><td>Schmidt</td><td>Bio</td><td>Chemie</td><td>R1</td><td>R2</td><td>Raumwechsel</td></tr>
</table></body></html>"""


@pytest.fixture
def pages(tmp_path):
    first = tmp_path / "page1.html"
    first.write_text(FRAME.format(date="22.9.2025 Montag", klasse="10a"), encoding="utf-8")
    second = tmp_path / "page2.html"
    second.write_text(FRAME.format(date="19.9.2025 Freitag", klasse="---"), encoding="utf-8")
    return [str(first), str(second)]


def test_html_mode_writes_json(tmp_path, pages):
    out = tmp_path / "out.json"
    assert main(["--html", *pages, "-o", str(out), "--timezone", "Europe/Berlin"]) == 0

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["last_update"] == "2025-09-19T09:04:00+02:00"
    assert [d["date"] for d in data["days"]] == ["2025-09-19", "2025-09-22"]
    assert data["days"][0]["messages"]["general"][0]["fach_neu"] == "Chemie"


def test_html_mode_stdout(capsys, pages):
    assert main(["--html", pages[0], "-o", "-"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert list(data["days"][0]["messages"]) == ["10a"]


def test_first_frame_mode(tmp_path, pages):
    out = tmp_path / "out.json"
    assert main(["--html", *pages, "--first-frame", "-o", str(out)]) == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert [d["date"] for d in data["days"]] == ["2025-09-22"]


def test_first_frame_mode_wrong_table(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text("<table><tr><td>Klasse</td></tr></table>", encoding="utf-8")
    assert main(["--html", str(page), "--first-frame", "-o", str(tmp_path / "out.json")]) == 1
    assert "Stunde" in capsys.readouterr().err


def test_missing_html_file(tmp_path, capsys):
    assert main(["--html", str(tmp_path / "nope.html")]) == 1
    assert "not found" in capsys.readouterr().err


def test_credentials_required(monkeypatch, capsys):
    monkeypatch.delenv("DSB_USERNAME", raising=False)
    monkeypatch.delenv("DSB_PASSWORD", raising=False)
    assert main([]) == 1
    assert "credentials" in capsys.readouterr().err


def test_unknown_timezone(capsys, pages):
    assert main(["--html", pages[0], "-o", "-", "--timezone", "Foo/Bar"]) == 1
    assert "unknown time zone" in capsys.readouterr().err


@pytest.mark.parametrize("value", ["0", "-3"])
def test_max_pages_below_one_rejected(capsys, pages, value):
    with pytest.raises(SystemExit) as exc:
        main(["--html", pages[0], "--max-pages", value])
    assert exc.value.code == 2
    assert "--max-pages" in capsys.readouterr().err
