import json

import pytest
import typer
from sqlalchemy import create_engine, text
from typer.testing import CliRunner

from remitos.cli import _parse_filter, app

runner = CliRunner()


@pytest.fixture()
def env(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = create_engine(db_url)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE SDELIVERY (SDHNUM_0 TEXT, DLVDAT_0 DATE, XX6FLSIGN_0 INTEGER, "
                "CFMFLG_0 INTEGER, CPY_0 TEXT, STOFCY_0 TEXT)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO SDELIVERY VALUES "
                "('R1', '2024-01-02', 1, 2, 'AR1', 'F01'), ('R2', '2024-01-03', 2, 2, 'AR1', 'F01')"
            )
        )
    engine.dispose()
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    return tmp_path


def test_parse_filter():
    descriptor = _parse_filter("BPDNAM_0:LIKE:a:b")
    assert (descriptor.field, descriptor.operator, descriptor.value) == ("BPDNAM_0", "LIKE", "a:b")
    with pytest.raises(typer.BadParameter):
        _parse_filter("BPDNAM_0")


def test_columns_command_writes_standard_config(env):
    listed = runner.invoke(app, ["columns"])
    assert listed.exit_code == 0
    assert json.loads(listed.stdout.strip().splitlines()[-1])[0] == "SDHNUM_0"

    written = runner.invoke(app, ["columns", "--write"])
    assert written.exit_code == 0
    document = json.loads((env / "config" / "table-defaults.json").read_text(encoding="utf-8"))
    fields = [col["field"] for col in document["table"]["dbColumns"]]
    assert fields == ["SDHNUM_0", "DLVDAT_0", "XX6FLSIGN_0", "CFMFLG_0", "CPY_0", "STOFCY_0"]


def test_query_command(env):
    result = runner.invoke(
        app,
        ["query", "--cpy", "AR1", "--stofcy", "F01", "-c", "SDHNUM_0", "-f", "XX6FLSIGN_0:EQUALS:2"],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload["remitos"] == [{"SDHNUM_0": "R2"}]
    assert payload["pagination"]["totalCount"] == 1


def test_query_command_rejects_bad_column(env):
    result = runner.invoke(app, ["query", "--cpy", "AR1", "--stofcy", "F01", "-c", "SDHNUM_0;--"])
    assert result.exit_code == 1
