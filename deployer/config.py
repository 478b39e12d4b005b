import json, logging, os, pathlib
from dataclasses import dataclass, field, replace
import yaml
from dotenv import load_dotenv
from jsonschema import ValidationError, validate
from .detect_changes import git
from .errors import ChangeDetectionError, ConfigError
from .models import DEFAULT_EXTENSIONS, RunMetadata

log = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).resolve().parent / 'config_schemas' / 'deploy.schema.json'
CONFIG_NAME = 'deploy.yaml'
ENV_PREFIX = 'SQLDEPLOY_'
TRUTHY = ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    sql_dir: str = '.'
    extensions: tuple = DEFAULT_EXTENSIONS
    audit_table: str = 'DEPLOYMENT_HISTORY'
    audit_path: str = 'logs/audit.jsonl'
    continue_on_error: bool = False
    create_audit_table: bool = False
    snowflake: dict = field(default_factory=dict)

    @property
    def simulate(self):
        return not snowflake_ready(self.snowflake)


def load_env(repo_root):
    # real environment wins over .env
    load_dotenv(pathlib.Path(repo_root) / '.env', override=False)


def read_config(path):
    """Load and validate deploy.yaml; a missing file means defaults."""
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        data = yaml.safe_load(p.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f'{p}: {e}') from e
    check(data, p)
    return data


def check(data, source):
    try:
        validate(instance=data, schema=json.loads(SCHEMA_PATH.read_text()))
    except ValidationError as e:
        raise ConfigError(f'{source}: {e.message}') from e


def _env_overrides(environ):
    out = {}
    for key in ('sql_dir', 'audit_table', 'audit_path'):
        v = environ.get(ENV_PREFIX + key.upper())
        if v: out[key] = v
    for key in ('continue_on_error', 'create_audit_table'):
        v = environ.get(ENV_PREFIX + key.upper())
        if v: out[key] = v.strip().lower() in TRUTHY
    exts = environ.get(ENV_PREFIX + 'EXTENSIONS')
    if exts: out['extensions'] = [e.strip() for e in exts.split(',') if e.strip()]
    return out


def snowflake_params(environ):
    keys = ('account', 'user', 'password', 'role', 'warehouse', 'database', 'schema', 'authenticator')
    params = {k: environ['SNOWFLAKE_' + k.upper()] for k in keys if environ.get('SNOWFLAKE_' + k.upper())}
    key_path = environ.get('SNOWFLAKE_PRIVATE_KEY_PATH')
    if key_path:
        params['private_key_path'] = key_path
        params['private_key_passphrase'] = environ.get('SNOWFLAKE_PRIVATE_KEY_PASSPHRASE')
    return params


def snowflake_ready(params):
    return bool(params.get('account') and params.get('user')
                and (params.get('password') or params.get('private_key_path') or params.get('authenticator')))


def load_settings(repo_root, config_path=None, environ=None, **overrides):
    """Defaults < deploy.yaml < SQLDEPLOY_* environment < explicit overrides (CLI)."""
    environ = os.environ if environ is None else environ
    data = read_config(config_path or pathlib.Path(repo_root) / CONFIG_NAME)
    data.update(_env_overrides(environ))
    data.update({k: v for k, v in overrides.items() if v is not None})
    # environment and CLI values must pass the same schema as deploy.yaml
    if 'extensions' in data: data['extensions'] = list(data['extensions'])
    check(data, 'settings')
    if 'extensions' in data: data['extensions'] = tuple(data['extensions'])
    settings = replace(Settings(), **data)
    settings.snowflake = snowflake_params(environ)
    return settings


def run_metadata(repo_root, environ=None):
    environ = os.environ if environ is None else environ
    actor = environ.get('GITHUB_ACTOR') or environ.get('USER') or 'local-user'
    commit = environ.get('GITHUB_SHA')
    if not commit:
        try:
            commit = git(repo_root, 'rev-parse', 'HEAD').strip()
        except ChangeDetectionError as e:
            log.debug('no commit id available: %s', e)
            commit = 'manual-run'
    return RunMetadata(commit=commit, actor=actor)
