import argparse, json, logging, pathlib, sys
from .audit import JsonlAuditLog, SnowflakeAuditLog
from .config import load_env, load_settings
from .detect_changes import all_files
from .errors import DeployError
from .executor import SnowflakeTarget
from .models import DeploymentRequest, DeployMode

log = logging.getLogger(__name__)


def latest_by_file(rows):
    """Last audit row per filename; rows are expected in append order."""
    out = {}
    for r in rows: out[r['FILENAME']] = r
    return out


def build_report(repo_files, rows):
    latest = latest_by_file(rows)
    deployed = sorted(f for f in repo_files if f in latest and latest[f]['STATUS'] == 'SUCCESS')
    failing = sorted(f for f in repo_files if f in latest and latest[f]['STATUS'] != 'SUCCESS')
    never = sorted(f for f in repo_files if f not in latest)
    removed = sorted(set(latest) - set(repo_files))
    return {'files': len(repo_files), 'deployed': deployed, 'failing': failing,
            'never_deployed': never, 'not_in_repo': removed,
            'last_failure': {f: latest[f].get('ERROR_MESSAGE') for f in failing}}


def audit_rows(repo, settings):
    if settings.simulate:
        return JsonlAuditLog(repo / settings.audit_path).rows()
    target = SnowflakeTarget.connect(settings.snowflake)
    try:
        return SnowflakeAuditLog(target.conn, settings.audit_table).rows()
    finally:
        target.close()


def main(argv=None):
    ap = argparse.ArgumentParser(prog='sqldeploy-history', description='Compare repository SQL files with the deployment history.')
    ap.add_argument('--repo', default='.'); ap.add_argument('--config'); ap.add_argument('--out')
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)-8s] %(message)s')
    repo = pathlib.Path(args.repo).resolve(); load_env(repo)
    try:
        settings = load_settings(repo, config_path=args.config)
        request = DeploymentRequest(mode=DeployMode.FULL, repo_root=repo, sql_dir=settings.sql_dir, extensions=settings.extensions)
        report = build_report(all_files(request), audit_rows(repo, settings))
    except DeployError as e:
        log.error('%s', e); return 2
    out = pathlib.Path(args.out) if args.out else repo / 'outputs' / 'history_report.json'
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report, indent=2, default=str))
    print(f"History report written: {len(report['deployed'])} deployed, {len(report['failing'])} failing, "
          f"{len(report['never_deployed'])} never deployed")
    return 0


if __name__ == '__main__': sys.exit(main())
