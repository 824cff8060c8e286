import io
import json

import pytest

from dcaudit import cli


def test_audit_command_exit_codes(write_counts, capsys):
    raw = write_counts("raw.txt", [(3, '"a"')])
    reported = write_counts("reported.txt", [(3, '"a"')])
    assert cli.main(["audit", str(raw), str(reported)]) == 0
    assert capsys.readouterr().out == ""

    assert cli.main(["audit", "-v", str(raw), str(reported)]) == 0
    line = json.loads(capsys.readouterr().out)
    assert line["status"] == "count okay"

    noisy = write_counts("noisy.txt", [(3, '"a"')], raw_lines=["5 bogus"])
    assert cli.main(["audit", str(noisy), str(reported)]) == 1

    unsorted = write_counts("unsorted.txt", [(1, '"b"'), (1, '"a"')])
    assert cli.main(["audit", str(unsorted), str(reported)]) == 2
    assert "out of order" in capsys.readouterr().err


def test_audit_command_writes_out_file(write_counts, tmp_path):
    raw = write_counts("raw.txt", [(5, '"x"')])
    reported = write_counts("reported.txt", [])
    out = tmp_path / "results" / "diagnostics.jsonl"

    assert cli.main(["audit", str(raw), str(reported), "--out", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8")) == {
        "dirname": "x",
        "ndirents": 5,
        "nreported": 0,
        "status": "error: count mismatch (no optimized count)",
    }


def test_verbose_from_environment(write_counts, capsys, monkeypatch):
    monkeypatch.setenv("DCAUDIT_VERBOSE", "yes")
    raw = write_counts("raw.txt", [(3, '"a"')])
    reported = write_counts("reported.txt", [(3, '"a"')])
    assert cli.main(["audit", str(raw), str(reported)]) == 0
    assert "count okay" in capsys.readouterr().out


def test_fields_and_tally_commands(monkeypatch, capsys):
    dump = "\n".join([
        json.dumps({"keys": ["dirname"]}),
        json.dumps({"entry": ["/a"]}),
        json.dumps({"entry": ["/a"]}),
        json.dumps({"entry": ["/b"]}),
    ])
    monkeypatch.setattr("sys.stdin", io.StringIO(dump + "\n"))
    assert cli.main(["fields", "dirname"]) == 0
    extracted = capsys.readouterr().out
    assert extracted == '"/a"\n"/a"\n"/b"\n'

    monkeypatch.setattr("sys.stdin", io.StringIO(extracted))
    assert cli.main(["tally"]) == 0
    assert capsys.readouterr().out == '      2 "/a"\n      1 "/b"\n'


def test_fields_command_fails_on_bad_header(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps({"entry": []}) + "\n"))
    assert cli.main(["fields", "dirname"]) == 2
    assert 'header row has no "keys"' in capsys.readouterr().err


def test_rejects_unknown_log_level():
    with pytest.raises(SystemExit):
        cli.main(["--log-level", "chatty", "tally"])


def test_audit_command_writes_surrogate_keys(write_counts, tmp_path):
    raw = write_counts("raw.txt", [(2, '"\\ud800"')])
    reported = write_counts("reported.txt", [])
    out = tmp_path / "diagnostics.jsonl"

    assert cli.main(["audit", str(raw), str(reported), "--out", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8"))["dirname"] == "\ud800"
