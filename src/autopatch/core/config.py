"""Configuration management for autopatch (autopatch.toml parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ImportError:
        tomllib = None  # type: ignore[assignment]


CONFIG_FILENAME = "autopatch.toml"
ENV_VAR = "AUTOPATCH_ENV"


class ConfigError(ValueError):
    """Raised when the configuration cannot be used to start a run."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Configuration errors: {', '.join(errors)}")


@dataclass
class SuiteCommands:
    single: str
    all: str
    watch: str = ""


def _default_commands() -> dict[str, SuiteCommands]:
    return {
        "jest": SuiteCommands(
            single='npx jest "{file}" --verbose --no-cache',
            all="npm test",
            watch="npx jest --watch --silent",
        ),
        "playwright": SuiteCommands(
            single='npx playwright test "{file}"',
            all="npm run test:e2e",
            watch="npx playwright test --watch",
        ),
        "storybook": SuiteCommands(
            single='npm run test:storybook -- --testPathPattern="{file}"',
            all="npm run test:storybook",
            watch="npm run test:storybook -- --watch",
        ),
    }


@dataclass
class TestRunnerConfig:
    __test__ = False

    default_timeout_ms: int = 120_000
    commands: dict[str, SuiteCommands] = field(default_factory=_default_commands)


@dataclass
class ErrorAnalysisConfig:
    max_errors_per_cycle: int = 50
    confidence_thresholds: dict[str, float] = field(
        default_factory=lambda: {
            "critical": 0.9,
            "high": 0.8,
            "medium": 0.7,
            "low": 0.6,
        }
    )
    enforce_thresholds: bool = True


@dataclass
class PatchGenerationConfig:
    import_corrections: dict[str, str] = field(default_factory=dict)
    typo_corrections: dict[str, str] = field(default_factory=dict)
    table_name_corrections: dict[str, str] = field(default_factory=dict)


@dataclass
class BackupConfig:
    directory: str = ".auto-patch/backups"
    retention_days: int = 7


@dataclass
class LoggingConfig:
    directory: str = ".auto-patch/logs"
    level: str = "info"
    include_stack_traces: bool = False
    max_errors_in_report: int = 20
    max_patches_in_report: int = 15


@dataclass
class PerformanceConfig:
    # Reserved: the loop is sequential and never reads these.
    max_concurrent_patches: int = 5
    max_concurrent_tests: int = 3


@dataclass
class AutoPatchConfig:
    """Complete autopatch configuration."""

    max_attempts: int = 3
    timeout_ms: int = 300_000
    patch_log: str = ".auto-patch/patch.log"
    test_runner: TestRunnerConfig = field(default_factory=TestRunnerConfig)
    error_analysis: ErrorAnalysisConfig = field(default_factory=ErrorAnalysisConfig)
    patch_generation: PatchGenerationConfig = field(default_factory=PatchGenerationConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


# Environment profiles layered over the file config, keyed by AUTOPATCH_ENV.
ENV_PROFILES: dict[str, dict] = {
    "development": {
        "logging": {"level": "debug", "include_stack_traces": True},
    },
    "test": {
        "max_attempts": 1,
        "timeout_ms": 60_000,
        "logging": {"level": "warning"},
    },
    "production": {
        "error_analysis": {
            "confidence_thresholds": {
                "critical": 0.95,
                "high": 0.9,
                "medium": 0.85,
                "low": 0.8,
            }
        },
        "logging": {"level": "info", "include_stack_traces": False},
    },
}


def load_config(
    project_path: Path | None = None,
    env: str | None = None,
    overrides: dict | None = None,
    validate: bool = False,
) -> AutoPatchConfig:
    """Load configuration from autopatch.toml if present, otherwise return defaults.

    Layering order: built-in defaults, the environment profile named by
    ``AUTOPATCH_ENV`` (default ``development``), the file, then ``overrides``.
    """
    config = AutoPatchConfig()

    if project_path is None:
        project_path = Path.cwd()

    env = env or os.environ.get(ENV_VAR, "development")
    profile = ENV_PROFILES.get(env)
    if profile:
        apply_settings(config, profile)

    config_file = project_path / CONFIG_FILENAME
    if config_file.exists() and tomllib is not None:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        apply_settings(config, data)

    if overrides:
        apply_settings(config, overrides)

    if validate:
        errors = validate_config(config)
        if errors:
            raise ConfigError(errors)

    return config


def apply_settings(config: AutoPatchConfig, data: dict) -> AutoPatchConfig:
    """Overlay a (possibly partial) settings mapping onto ``config``."""
    if "general" in data:
        apply_settings(config, data["general"])

    for attr in ("max_attempts", "timeout_ms", "patch_log"):
        if attr in data:
            setattr(config, attr, data[attr])

    if "test_runner" in data:
        tr = data["test_runner"]
        if "default_timeout_ms" in tr:
            config.test_runner.default_timeout_ms = tr["default_timeout_ms"]
        for suite, cmds in tr.get("commands", {}).items():
            existing = config.test_runner.commands.get(suite)
            if existing is None:
                config.test_runner.commands[suite] = SuiteCommands(
                    single=cmds.get("single", ""),
                    all=cmds.get("all", ""),
                    watch=cmds.get("watch", ""),
                )
                continue
            for attr in ("single", "all", "watch"):
                if attr in cmds:
                    setattr(existing, attr, cmds[attr])

    if "error_analysis" in data:
        ea = data["error_analysis"]
        if "max_errors_per_cycle" in ea:
            config.error_analysis.max_errors_per_cycle = ea["max_errors_per_cycle"]
        if "enforce_thresholds" in ea:
            config.error_analysis.enforce_thresholds = ea["enforce_thresholds"]
        if "confidence_thresholds" in ea:
            config.error_analysis.confidence_thresholds.update(ea["confidence_thresholds"])

    if "patch_generation" in data:
        pg = data["patch_generation"]
        for attr in ("import_corrections", "typo_corrections", "table_name_corrections"):
            if attr in pg:
                getattr(config.patch_generation, attr).update(pg[attr])

    if "backup" in data:
        b = data["backup"]
        for attr in ("directory", "retention_days"):
            if attr in b:
                setattr(config.backup, attr, b[attr])

    if "logging" in data:
        lg = data["logging"]
        for attr in (
            "directory",
            "level",
            "include_stack_traces",
            "max_errors_in_report",
            "max_patches_in_report",
        ):
            if attr in lg:
                setattr(config.logging, attr, lg[attr])

    if "performance" in data:
        p = data["performance"]
        for attr in ("max_concurrent_patches", "max_concurrent_tests"):
            if attr in p:
                setattr(config.performance, attr, p[attr])

    return config


def validate_config(config: AutoPatchConfig) -> list[str]:
    """Return a list of problems; empty when the config is usable."""
    errors = []

    if config.max_attempts < 1 or config.max_attempts > 10:
        errors.append("max_attempts must be between 1 and 10")

    if config.timeout_ms < 10_000:
        errors.append("timeout_ms must be at least 10 seconds")

    jest = config.test_runner.commands.get("jest")
    if jest is None or not jest.all:
        errors.append("Jest test runner configuration is required")

    if config.error_analysis.max_errors_per_cycle < 1:
        errors.append("error_analysis.max_errors_per_cycle must be positive")

    return errors


def get_autopatch_dir(project_path: Path | None = None) -> Path:
    """Get or create the .auto-patch directory."""
    if project_path is None:
        project_path = Path.cwd()
    autopatch_dir = project_path / ".auto-patch"
    autopatch_dir.mkdir(exist_ok=True)
    return autopatch_dir


def resolve_path(project_path: Path, value: str) -> Path:
    """Resolve a configured path relative to the project root."""
    path = Path(value)
    if path.is_absolute():
        return path
    return project_path / path
