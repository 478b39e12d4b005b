"""Tests for the deployment history comparison and the audit summary."""

import json

from deployer import history
from deployer.history import build_report, latest_by_file
from deployer.report import audit_frame, last_failures, summarize


def row(filename, status, kind="NORMAL DEPLOY", error=None, ts="2024-05-01 12:00:00"):
    return {"DEPLOYMENT_TIMESTAMP": ts, "FILENAME": filename, "COMMIT_SHA": "abc", "GITHUB_ACTOR": "me",
            "STATUS": status, "DEPLOYMENT_TYPE": kind, "ERROR_MESSAGE": error}


ROWS = [
    row("00_Schema/core.sql", "SUCCESS", "FULL DEPLOY"),
    row("01_Table/orders.sql", "FAILURE", error="syntax error"),
    row("01_Table/orders.sql", "SUCCESS"),
    row("02_View/v_orders.sql", "FAILURE", error="object does not exist"),
    row("99_Old/removed.sql", "SUCCESS"),
]


def test_latest_row_wins():
    assert latest_by_file(ROWS)["01_Table/orders.sql"]["STATUS"] == "SUCCESS"


def test_build_report():
    files = {"00_Schema/core.sql", "01_Table/orders.sql", "02_View/v_orders.sql", "03_Proc/new.sql"}
    report = build_report(files, ROWS)
    assert report["files"] == 4
    assert report["deployed"] == ["00_Schema/core.sql", "01_Table/orders.sql"]
    assert report["failing"] == ["02_View/v_orders.sql"]
    assert report["never_deployed"] == ["03_Proc/new.sql"]
    assert report["not_in_repo"] == ["99_Old/removed.sql"]
    assert report["last_failure"] == {"02_View/v_orders.sql": "object does not exist"}


def test_history_main_uses_local_log_without_credentials(tmp_path, monkeypatch):
    for var in ("SNOWFLAKE_ACCOUNT", "SNOWFLAKE_USER", "SNOWFLAKE_PASSWORD", "SNOWFLAKE_AUTHENTICATOR",
                "SNOWFLAKE_PRIVATE_KEY_PATH", "SQLDEPLOY_SQL_DIR", "SQLDEPLOY_AUDIT_PATH"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "deploy.yaml").write_text("sql_dir: sql\n")
    (tmp_path / "sql").mkdir()
    (tmp_path / "sql" / "a.sql").write_text("SELECT 1;")
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "audit.jsonl").write_text(json.dumps(row("a.sql", "SUCCESS")) + "\n")
    out = tmp_path / "report.json"
    assert history.main(["--repo", str(tmp_path), "--out", str(out)]) == 0
    assert json.loads(out.read_text())["deployed"] == ["a.sql"]


def test_summary_counts_by_type_and_status():
    summary = summarize(audit_frame(ROWS))
    assert summary.loc["NORMAL DEPLOY", "FAILURE"] == 2
    assert summary.loc["NORMAL DEPLOY", "SUCCESS"] == 2
    assert summary.loc["FULL DEPLOY", "SUCCESS"] == 1
    assert summary.loc["FULL DEPLOY", "FAILURE"] == 0


def test_last_failures_one_per_file():
    lf = last_failures(audit_frame(ROWS))
    assert sorted(lf["FILENAME"]) == ["01_Table/orders.sql", "02_View/v_orders.sql"]


def test_empty_audit():
    assert summarize(audit_frame([])).empty
