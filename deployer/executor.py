import datetime, logging
import snowflake.connector
from snowflake.connector.errors import Error as SnowflakeError
from .audit import SnowflakeAuditLog
from .detect_changes import detect
from .errors import ConfigError, ExecutionError, FileReadError
from .models import DeploymentRecord, RunResult, Status
from .ordering import order_tasks

log = logging.getLogger(__name__)


def _load_private_key(path, passphrase):
    from cryptography.hazmat.primitives import serialization
    try:
        with open(path, 'rb') as f:
            key = serialization.load_pem_private_key(f.read(), password=passphrase.encode() if passphrase else None)
    except (OSError, ValueError, TypeError) as e:
        raise ConfigError(f'cannot load private key {path}: {e}') from e
    return key.private_bytes(encoding=serialization.Encoding.DER, format=serialization.PrivateFormat.PKCS8,
                             encryption_algorithm=serialization.NoEncryption())


class SnowflakeTarget:
    """One Snowflake session for the whole run."""

    def __init__(self, conn):
        self.conn = conn

    @classmethod
    def connect(cls, params):
        params = dict(params)
        key_path = params.pop('private_key_path', None)
        passphrase = params.pop('private_key_passphrase', None)
        if key_path:
            params.pop('password', None)
            params['private_key'] = _load_private_key(key_path, passphrase)
        log.info('connecting to Snowflake account %s as %s', params.get('account'), params.get('user'))
        try:
            return cls(snowflake.connector.connect(**params))
        except SnowflakeError as e:
            raise ConfigError(f'Snowflake connection failed: {e}') from e

    def execute(self, sql):
        # execute_string runs every statement in the file, stopping at the first error
        try:
            self.conn.execute_string(sql, remove_comments=False)
        except SnowflakeError as e:
            # a failure after BEGIN leaves the transaction open; close it so the audit insert commits on its own
            try:
                self.conn.rollback()
            except SnowflakeError as rb:
                log.warning('rollback after failed script also failed: %s', rb)
            raise ExecutionError(str(e) or type(e).__name__) from e

    def close(self):
        self.conn.close()


class SimulatedTarget:
    """Accepts everything; used when no Snowflake credentials are configured."""

    def __init__(self):
        self.executed = []

    def execute(self, sql):
        self.executed.append(sql)

    def close(self):
        pass


def read_sql(task):
    try:
        return task.source.read_text(encoding='utf-8-sig')
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(task.path, e) from e


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def run_tasks(tasks, target, audit, meta, deployment_type, continue_on_error=False, clock=utcnow):
    """Apply tasks in the given order, writing one audit record per attempted file.

    A failure is recorded and, unless continue_on_error is set, ends the run.
    Files already applied stay applied; earlier files are never rolled back and nothing is retried.
    Audit write failures (LoggingError) are not caught here.
    """
    result = RunResult(tasks=list(tasks))
    for i, task in enumerate(result.tasks):
        status, error = Status.SUCCESS, None
        try:
            sql = read_sql(task)
            if sql.strip():
                log.info('[%d/%d] %s', i + 1, len(result.tasks), task.path)
                target.execute(sql)
            else:
                log.warning('[%d/%d] %s is empty, nothing to execute', i + 1, len(result.tasks), task.path)
        except (FileReadError, ExecutionError) as e:
            status, error = Status.FAILURE, str(e)
            log.error('%s failed: %s', task.path, error)
        record = DeploymentRecord(timestamp=clock(), filename=task.path, commit=meta.commit, actor=meta.actor,
                                  status=status, deployment_type=deployment_type, error_message=error)
        audit.append(record)
        result.records.append(record)
        if status is Status.FAILURE and not continue_on_error:
            remaining = len(result.tasks) - i - 1
            if remaining:
                log.error('stopping after first failure, %d file(s) not attempted', remaining)
                result.stopped_early = True
            break
    return result


def plan(request):
    return order_tasks(detect(request), request.sql_root)


def deploy(request, settings, meta, target=None, audit=None):
    """Detect, order, execute and audit one run.

    The target is opened only when there is something to apply and is always
    closed before returning, whatever the per-file outcomes.
    """
    tasks = plan(request)
    if not tasks:
        log.info('no %s files to deploy', '/'.join(request.extensions))
        for c in (target, audit):
            if c is not None: c.close()
        return RunResult(tasks=[])
    log.info('%s: %d file(s) to apply', request.mode.deployment_type, len(tasks))
    if target is None: target = SnowflakeTarget.connect(settings.snowflake)
    try:
        if audit is None:
            audit = SnowflakeAuditLog(target.conn, settings.audit_table)
            if settings.create_audit_table: audit.ensure_table()
        return run_tasks(tasks, target, audit, meta, request.mode.deployment_type,
                         continue_on_error=settings.continue_on_error)
    finally:
        try:
            if audit is not None: audit.close()
        finally:
            target.close()
