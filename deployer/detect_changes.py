import logging, os, pathlib, subprocess
from .errors import ChangeDetectionError
from .models import DeployMode

log = logging.getLogger(__name__)

EMPTY_TREE = '4b825dc642cb6eb9a060e54bf8d69288fbee4904'
DEFAULT_BASE, DEFAULT_HEAD = 'HEAD~1', 'HEAD'


def git(repo_root, *args):
    cmd = ['git', '-C', str(repo_root), *args]
    try:
        out = subprocess.run(cmd, check=True, capture_output=True, encoding='utf-8')
    except FileNotFoundError as e:
        raise ChangeDetectionError('git executable not found') from e
    except subprocess.CalledProcessError as e:
        raise ChangeDetectionError(f"{' '.join(cmd[3:])} failed: {e.stderr.strip()}") from e
    return out.stdout


def has_extension(path, extensions):
    return path.lower().endswith(tuple(e.lower() for e in extensions))


def _relative_to_sql_dir(request, top, repo_path):
    # git reports paths relative to the top of the work tree
    try:
        return (top / repo_path).resolve().relative_to(request.sql_root).as_posix()
    except ValueError:
        return None


def changed_files(request):
    """Added or modified files between base and head; deletions never deploy."""
    base = request.base or DEFAULT_BASE
    head = request.head or DEFAULT_HEAD
    if set(base) == {'0'}:
        log.info('base revision %s is null, diffing against the empty tree', base)
        base = EMPTY_TREE
    pathspec = os.path.relpath(request.sql_root, pathlib.Path(request.repo_root).resolve())
    raw = git(request.repo_root, 'diff', '--name-only', '-z', '--no-renames', '--diff-filter=AM',
              base, head, '--', pathspec)
    top = pathlib.Path(git(request.repo_root, 'rev-parse', '--show-toplevel').strip()).resolve()
    out = set()
    for name in raw.split('\0'):
        if not name or not has_extension(name, request.extensions): continue
        rel = _relative_to_sql_dir(request, top, name)
        if rel is None: continue
        if not (request.sql_root / rel).is_file():
            log.warning('%s changed in %s..%s but is not in the working tree, skipping', rel, base, head)
            continue
        out.add(rel)
    log.debug('incremental %s..%s: %d file(s)', base, head, len(out))
    return out


def all_files(request):
    """Every recognized file under the SQL directory, regardless of history."""
    root = request.sql_root
    if not root.is_dir():
        raise ChangeDetectionError(f'SQL directory not found: {root}')
    out = set()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith('.')]
        for name in filenames:
            if has_extension(name, request.extensions):
                out.add((pathlib.Path(dirpath) / name).relative_to(root).as_posix())
    log.debug('full walk of %s: %d file(s)', root, len(out))
    return out


def detect(request):
    if request.mode is DeployMode.FULL: return all_files(request)
    return changed_files(request)
