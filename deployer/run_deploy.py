import argparse, logging, os, pathlib, sys
from .audit import JsonlAuditLog
from .config import load_env, load_settings, run_metadata
from .errors import DeployError
from .executor import SimulatedTarget, deploy, plan
from .models import DeploymentRequest, DeployMode, Status

log = logging.getLogger('sqldeploy')


def build_parser():
    ap = argparse.ArgumentParser(prog='sqldeploy', description='Apply changed (or all) SQL files in lexical order and audit each one.')
    ap.add_argument('--full', action='store_true', help='deploy every SQL file, ignoring commit history')
    ap.add_argument('--base', help='base revision for incremental mode (default HEAD~1)')
    ap.add_argument('--head', help='head revision for incremental mode (default HEAD)')
    ap.add_argument('--repo', default='.', help='repository root')
    ap.add_argument('--sql-dir', help='SQL directory relative to the repository root')
    ap.add_argument('--config', help='path to deploy.yaml')
    ap.add_argument('--continue-on-error', action='store_true', default=None,
                    help='keep going after a failed file (default: stop at the first failure)')
    ap.add_argument('--dry-run', action='store_true', help='print the ordered plan and execute nothing')
    ap.add_argument('-v', '--verbose', action='store_true')
    return ap


def setup_logging(verbose=False):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(asctime)s [%(levelname)-8s] %(message)s', datefmt='%Y-%m-%dT%H:%M:%S', stream=sys.stdout)


def main(argv=None, environ=None):
    args = build_parser().parse_args(argv)
    environ = os.environ if environ is None else environ
    setup_logging(args.verbose)
    repo = pathlib.Path(args.repo).resolve()
    load_env(repo)
    try:
        settings = load_settings(repo, config_path=args.config, environ=environ,
                                 sql_dir=args.sql_dir, continue_on_error=args.continue_on_error)
        request = DeploymentRequest(mode=DeployMode.FULL if args.full else DeployMode.INCREMENTAL, repo_root=repo,
                                    sql_dir=settings.sql_dir, base=args.base, head=args.head, extensions=settings.extensions)
        if args.dry_run:
            tasks = plan(request)
            print(f'{request.mode.deployment_type}: {len(tasks)} file(s)')
            for t in tasks: print(f'  {t.path}')
            return 0
        meta = run_metadata(repo, environ)
        target = audit = None
        if settings.simulate:
            if environ.get('CI'):
                log.error('Snowflake credentials missing in CI, refusing to simulate')
                return 2
            print('Snowflake creds missing, simulation only.')
            target, audit = SimulatedTarget(), JsonlAuditLog(repo / settings.audit_path)
        result = deploy(request, settings, meta, target=target, audit=audit)
    except DeployError as e:
        log.error('%s', e)
        return 2
    ok = sum(1 for r in result.records if r.status is Status.SUCCESS)
    print(f'Done: {ok}/{len(result.records)} applied, {len(result.tasks) - len(result.records)} not attempted.')
    return result.exit_code


if __name__ == '__main__': sys.exit(main())
