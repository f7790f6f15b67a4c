"""Configuration paths and settings for reviewgraph.

Settings come from ``~/.reviewgraph/config.toml`` (override the directory with
``REVIEWGRAPH_HOME``) and a handful of sandbox environment variables. Nothing
is loaded at import time: callers build a :class:`ReviewConfig` explicitly and
hand it to the services they construct.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import toml

BASE_DIR = Path(os.environ.get("REVIEWGRAPH_HOME", str(Path.home() / ".reviewgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_SANDBOX_DIR = "/tmp/reviewgraph-sandbox"
DEFAULT_DOCKER_IMAGE = "node:18-alpine"
DEFAULT_TIMEOUT_MS = 300_000

DEFAULT_BUILD_COMMANDS: List[List[str]] = [
    ["pnpm", "run", "build"],
    ["npm", "run", "build"],
    ["yarn", "build"],
    ["tsc", "--noEmit"],
    ["echo", "No build command found, skipping..."],
]

DEFAULT_LINT_COMMANDS: List[List[str]] = [
    ["pnpm", "run", "lint", "--format=json"],
    ["npm", "run", "lint", "--format=json"],
    ["npx", "eslint", ".", "--format=json"],
    ["echo", "[]"],
]

DEFAULT_TEST_COMMANDS: List[List[str]] = [
    ["pnpm", "test"],
    ["npm", "test"],
    ["yarn", "test"],
    ["npx", "jest"],
    ["npx", "vitest", "run"],
    ["echo", "No tests found"],
]


@dataclass
class SandboxConfig:
    """Settings consumed by the sandbox validator."""
    sandbox_dir: Path = Path(DEFAULT_SANDBOX_DIR)
    docker_image: str = DEFAULT_DOCKER_IMAGE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    checkout_timeout_ms: int = 30_000
    lint_timeout_ms: int = 60_000
    build_commands: List[List[str]] = field(default_factory=lambda: [list(c) for c in DEFAULT_BUILD_COMMANDS])
    lint_commands: List[List[str]] = field(default_factory=lambda: [list(c) for c in DEFAULT_LINT_COMMANDS])
    test_commands: List[List[str]] = field(default_factory=lambda: [list(c) for c in DEFAULT_TEST_COMMANDS])

    @property
    def clone_timeout(self) -> float:
        return self.timeout_ms / 5 / 1000

    @property
    def build_timeout(self) -> float:
        return self.timeout_ms / 3 / 1000

    @property
    def test_timeout(self) -> float:
        return self.timeout_ms / 2 / 1000

    @property
    def lint_timeout(self) -> float:
        return self.lint_timeout_ms / 1000

    @property
    def checkout_timeout(self) -> float:
        return self.checkout_timeout_ms / 1000


@dataclass
class AnalysisConfig:
    """Thresholds used by the impact graph builder."""
    proximity_threshold: int = 100
    high_impact_threshold: int = 5
    symbol_source: str = "regex"


@dataclass
class ReviewConfig:
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    A missing file yields an empty dict. A malformed file raises
    ``toml.TomlDecodeError`` so the user sees what is wrong with it.
    """
    path = config_file or CONFIG_FILE
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return toml.load(f)


def _commands(value: Any, default: List[List[str]]) -> List[List[str]]:
    if not value:
        return [list(c) for c in default]
    commands = []
    for item in value:
        # Accept either "npm run build" or ["npm", "run", "build"]
        commands.append(item.split() if isinstance(item, str) else [str(part) for part in item])
    return commands


def load_config(
    config_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ReviewConfig:
    """Build a :class:`ReviewConfig` from the TOML file and environment.

    Environment variables win over the file:
    ``SANDBOX_DIR``, ``SANDBOX_DOCKER_IMAGE`` and ``SANDBOX_TIMEOUT_MS``.
    """
    env = os.environ if environ is None else environ
    data = load_full_config(config_file)
    sandbox_section = data.get("sandbox", {})
    analysis_section = data.get("analysis", {})

    sandbox = SandboxConfig(
        sandbox_dir=Path(env.get("SANDBOX_DIR") or sandbox_section.get("sandbox_dir", DEFAULT_SANDBOX_DIR)),
        docker_image=env.get("SANDBOX_DOCKER_IMAGE") or sandbox_section.get("docker_image", DEFAULT_DOCKER_IMAGE),
        timeout_ms=int(env.get("SANDBOX_TIMEOUT_MS") or sandbox_section.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        checkout_timeout_ms=int(sandbox_section.get("checkout_timeout_ms", 30_000)),
        lint_timeout_ms=int(sandbox_section.get("lint_timeout_ms", 60_000)),
        build_commands=_commands(sandbox_section.get("build_commands"), DEFAULT_BUILD_COMMANDS),
        lint_commands=_commands(sandbox_section.get("lint_commands"), DEFAULT_LINT_COMMANDS),
        test_commands=_commands(sandbox_section.get("test_commands"), DEFAULT_TEST_COMMANDS),
    )
    analysis = AnalysisConfig(
        proximity_threshold=int(analysis_section.get("proximity_threshold", 100)),
        high_impact_threshold=int(analysis_section.get("high_impact_threshold", 5)),
        symbol_source=str(analysis_section.get("symbol_source", "regex")),
    )
    return ReviewConfig(sandbox=sandbox, analysis=analysis)


def save_config(config: ReviewConfig, config_file: Optional[Path] = None) -> Path:
    """Write *config* back to TOML, preserving unrelated sections."""
    path = config_file or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    data = load_full_config(path)
    data["sandbox"] = {
        "sandbox_dir": str(config.sandbox.sandbox_dir),
        "docker_image": config.sandbox.docker_image,
        "timeout_ms": config.sandbox.timeout_ms,
        "checkout_timeout_ms": config.sandbox.checkout_timeout_ms,
        "lint_timeout_ms": config.sandbox.lint_timeout_ms,
        "build_commands": config.sandbox.build_commands,
        "lint_commands": config.sandbox.lint_commands,
        "test_commands": config.sandbox.test_commands,
    }
    data["analysis"] = {
        "proximity_threshold": config.analysis.proximity_threshold,
        "high_impact_threshold": config.analysis.high_impact_threshold,
        "symbol_source": config.analysis.symbol_source,
    }
    with open(path, "w") as f:
        toml.dump(data, f)
    return path
