import datetime, enum, pathlib
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_EXTENSIONS = ('.sql',)
AUDIT_COLUMNS = ('DEPLOYMENT_TIMESTAMP', 'FILENAME', 'COMMIT_SHA', 'GITHUB_ACTOR',
                 'STATUS', 'DEPLOYMENT_TYPE', 'ERROR_MESSAGE')


class DeployMode(enum.Enum):
    INCREMENTAL = 'incremental'
    FULL = 'full'

    @property
    def deployment_type(self):
        return 'FULL DEPLOY' if self is DeployMode.FULL else 'NORMAL DEPLOY'


class Status(str, enum.Enum):
    SUCCESS = 'SUCCESS'
    FAILURE = 'FAILURE'


@dataclass
class DeploymentRequest:
    mode: DeployMode
    repo_root: pathlib.Path
    sql_dir: str = '.'
    base: Optional[str] = None
    head: Optional[str] = None
    extensions: tuple = DEFAULT_EXTENSIONS

    @property
    def sql_root(self):
        return (pathlib.Path(self.repo_root) / self.sql_dir).resolve()


@dataclass(frozen=True)
class FileTask:
    path: str
    source: pathlib.Path

    @property
    def ordering_key(self):
        return self.path


@dataclass(frozen=True)
class RunMetadata:
    commit: str
    actor: str


@dataclass(frozen=True)
class DeploymentRecord:
    timestamp: datetime.datetime
    filename: str
    commit: str
    actor: str
    status: Status
    deployment_type: str
    error_message: Optional[str] = None

    def as_row(self):
        return (self.timestamp.strftime('%Y-%m-%d %H:%M:%S.%f'), self.filename, self.commit, self.actor,
                self.status.value, self.deployment_type, self.error_message)

    def as_dict(self):
        return dict(zip(AUDIT_COLUMNS, self.as_row()))


@dataclass
class RunResult:
    tasks: list
    records: list = field(default_factory=list)
    stopped_early: bool = False

    @property
    def failed(self):
        return any(r.status is Status.FAILURE for r in self.records)

    @property
    def exit_code(self):
        return 1 if self.failed else 0
