"""Shared fixtures: a throwaway git repository and in-memory collaborators."""

import pathlib
import subprocess

import pytest

from deployer.audit import MemoryAuditLog
from deployer.errors import ExecutionError
from deployer.models import RunMetadata


def git(repo, *args):
    out = subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)
    return out.stdout.strip()


class GitRepo:
    def __init__(self, root: pathlib.Path):
        self.root = root
        git(root, "init", "-q")
        git(root, "config", "user.email", "ci@example.com")
        git(root, "config", "user.name", "CI")
        git(root, "config", "commit.gpgsign", "false")

    def write(self, rel, text="SELECT 1;\n"):
        p = self.root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text)
        return p

    def remove(self, rel):
        git(self.root, "rm", "-q", rel)

    def move(self, src, dst):
        (self.root / dst).parent.mkdir(parents=True, exist_ok=True)
        git(self.root, "mv", src, dst)

    def commit(self, message="change"):
        git(self.root, "add", "-A")
        git(self.root, "commit", "-q", "--allow-empty", "-m", message)
        return git(self.root, "rev-parse", "HEAD")


class FakeTarget:
    """Records submitted scripts; rejects any script containing a marker in fail_on."""

    def __init__(self, fail_on=()):
        self.fail_on = tuple(fail_on)
        self.executed = []
        self.closed = False

    def execute(self, sql):
        for marker in self.fail_on:
            if marker in sql:
                raise ExecutionError(f"SQL compilation error: object {marker} does not exist")
        self.executed.append(sql)

    def close(self):
        self.closed = True


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    return GitRepo(root)


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def audit():
    return MemoryAuditLog()


@pytest.fixture
def meta():
    return RunMetadata(commit="abc123", actor="octocat")


@pytest.fixture
def make_target():
    return FakeTarget
