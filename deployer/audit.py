import json, logging, pathlib
from snowflake.connector.errors import Error as SnowflakeError
from .errors import LoggingError
from .models import AUDIT_COLUMNS

log = logging.getLogger(__name__)

CREATE_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    DEPLOYMENT_TIMESTAMP TIMESTAMP_NTZ,
    FILENAME VARCHAR,
    COMMIT_SHA VARCHAR,
    GITHUB_ACTOR VARCHAR,
    STATUS VARCHAR,
    DEPLOYMENT_TYPE VARCHAR,
    ERROR_MESSAGE VARCHAR
)"""
INSERT = 'INSERT INTO {table} ({cols}) VALUES ({marks})'


class SnowflakeAuditLog:
    """Appends deployment records to the history table. Rows are never updated."""

    def __init__(self, conn, table):
        self.conn, self.table = conn, table

    def _run(self, what, sql, params=None, fetch=False):
        cur = None
        try:
            cur = self.conn.cursor()
            cur.execute(sql, params)
            return cur.fetchall() if fetch else None
        except SnowflakeError as e:
            raise LoggingError(f'{what} failed: {e}') from e
        finally:
            if cur is not None: cur.close()

    def ensure_table(self):
        self._run(f'creating audit table {self.table}', CREATE_TABLE.format(table=self.table))
        log.info('audit table %s ready', self.table)

    def append(self, record):
        sql = INSERT.format(table=self.table, cols=', '.join(AUDIT_COLUMNS), marks=', '.join(['%s'] * len(AUDIT_COLUMNS)))
        self._run(f'audit insert for {record.filename}', sql, record.as_row())

    def rows(self):
        rows = self._run(f'reading audit table {self.table}', f"SELECT {', '.join(AUDIT_COLUMNS)} FROM {self.table} ORDER BY DEPLOYMENT_TIMESTAMP", fetch=True)
        return [dict(zip(AUDIT_COLUMNS, r)) for r in rows]

    def close(self):
        pass


class JsonlAuditLog:
    """Local append-only log, one JSON object per line."""

    def __init__(self, path):
        self.path = pathlib.Path(path)

    def append(self, record):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a') as f: f.write(json.dumps(record.as_dict()) + '\n')
        except OSError as e:
            raise LoggingError(f'cannot write {self.path}: {e}') from e

    def rows(self):
        if not self.path.exists(): return []
        with open(self.path) as f:
            return [json.loads(ln) for ln in f if ln.strip()]

    def close(self):
        pass


class MemoryAuditLog:
    def __init__(self):
        self.records = []

    def append(self, record):
        self.records.append(record)

    def rows(self):
        return [r.as_dict() for r in self.records]

    def close(self):
        pass
