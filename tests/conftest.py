"""Pytest configuration and fixtures for reviewgraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Sequence

import pytest

from reviewgraph.config import SandboxConfig
from reviewgraph.runner import CommandResult


class FakeRunner:
    """Stands in for CommandRunner; answers by matching the command prefix.

    ``responses`` maps a space-joined command prefix (``"git clone"``,
    ``"npm run build"``) to a CommandResult or to a callable returning one.
    Unmatched commands fail with return code 1. Every call is recorded.
    """

    def __init__(self, responses: Optional[Dict[str, object]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, object]] = []

    def run(self, args: Sequence[str], cwd=None, timeout=None, env=None) -> CommandResult:
        self.calls.append({"args": list(args), "cwd": cwd, "timeout": timeout})
        joined = " ".join(args)
        # Longest prefix wins so "npm run lint" beats "npm"
        for prefix in sorted(self.responses, key=len, reverse=True):
            if joined.startswith(prefix):
                response = self.responses[prefix]
                return response(args, cwd) if callable(response) else response
        return CommandResult(returncode=1, stderr=f"unexpected command: {joined}")

    def commands(self) -> List[str]:
        return [" ".join(call["args"]) for call in self.calls]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_config(temp_dir: Path, monkeypatch) -> Path:
    """Point the config file at a temp location and clear sandbox env vars."""
    config_file = temp_dir / "home" / "config.toml"
    monkeypatch.setattr("reviewgraph.config.CONFIG_FILE", config_file)
    for name in ("SANDBOX_DIR", "SANDBOX_DOCKER_IMAGE", "SANDBOX_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)
    return config_file


@pytest.fixture
def sandbox_config(temp_dir: Path) -> SandboxConfig:
    """Sandbox settings with a temp workspace root and one command per phase."""
    return SandboxConfig(
        sandbox_dir=temp_dir / "sandboxes",
        build_commands=[["npm", "run", "build"]],
        lint_commands=[["npx", "eslint", ".", "--format=json"]],
        test_commands=[["npm", "test"]],
    )


@pytest.fixture
def make_fake_runner() -> Callable[..., FakeRunner]:
    """The FakeRunner class, for building runners with canned responses."""
    return FakeRunner


@pytest.fixture
def sample_project_path() -> Path:
    """Small TypeScript project with a diff touching ``sumLines``."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_diff(sample_project_path: Path) -> str:
    return (sample_project_path / "change.diff").read_text()


@pytest.fixture
def sample_ts_code() -> str:
    """TypeScript source exercising every definition form."""
    return '''import { helper } from './helper';

export interface Shape {
  area(): number;
}

export class Circle extends Base implements Shape, Drawable {
  private radius: number;

  constructor(radius: number) {
    super();
    this.radius = radius;
  }

  area(): number {
    return helper(this.radius);
  }

  protected describe(label: string): string {
    return label;
  }
}

export function makeCircle(r: number): Circle {
  return new Circle(r);
}

const scale = (value: number) => value * 2;
let counter = 0;
'''


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python code for testing parser."""
    return '''"""Sample module for testing."""

from os.path import join as path_join
import json

LIMIT = 10


def hello(name: str) -> str:
    """Say hello."""
    return format_name(name)


def format_name(name):
    return name.title()


class Calculator(Base):
    """Simple calculator."""

    def add(self, a: int, b: int) -> int:
        return a + b

    def _double(self, a):
        return self.add(a, a)

    def __secret(self):
        return LIMIT
'''
