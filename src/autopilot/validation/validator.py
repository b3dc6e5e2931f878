"""DefaultValidator - Runs a tenant's validation steps in its working tree."""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from autopilot.config import ValidationMode
from autopilot.runner import DEFAULT_ENV_ALLOWLIST, build_agent_env
from autopilot.validation.models import ValidationResult, ValidationSummary

if TYPE_CHECKING:
    from autopilot.config import ValidationConfig

logger = logging.getLogger("autopilot.validation")

OUTPUT_TAIL_CHARS = 5000

_PYTEST_MARKERS = ("pyproject.toml", "pytest.ini", "setup.cfg", "tox.ini")


class DefaultValidator:
    """Validation gate run after a successful agent session.

    In CUSTOM mode the tenant's configured commands run in order. In AUTO
    mode steps are detected from the repository: npm scripts, a tsconfig, or
    a pytest layout. A coverage check runs last in both modes when a
    threshold is set. Steps that do not apply are reported as passed skips.
    """

    def __init__(
        self,
        timeout_ms: int = 300_000,
        coverage_threshold: float = 0.0,
        env_allowlist: Iterable[str] = DEFAULT_ENV_ALLOWLIST,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the validator.

        Args:
            timeout_ms: Timeout for each validation command.
            coverage_threshold: Default line coverage percentage required,
                used when a tenant sets none. 0 disables the check.
            env_allowlist: Environment variable names forwarded to each step.
            clock: Monotonic clock, injectable for tests.
        """
        self.timeout_ms = timeout_ms
        self.coverage_threshold = coverage_threshold
        self.env_allowlist = tuple(dict.fromkeys(env_allowlist))
        self._clock = clock

    def validate(self, repo_path: str, config: ValidationConfig) -> ValidationSummary:
        """Run every validation step for a repository.

        Args:
            repo_path: Working tree to validate.
            config: The tenant's resolved validation configuration.

        Returns:
            ValidationSummary; passed only if every step passed.
        """
        started = self._clock()
        root = Path(repo_path)
        logger.info("Starting validation in %s (mode=%s)", root, config.mode.value)

        if config.mode == ValidationMode.CUSTOM:
            results = [
                self._run_command(step.name, list(step.command), root) for step in config.steps
            ]
        else:
            results = [
                self._run_tests(root),
                self._run_lint(root),
                self._run_typecheck(root),
            ]
            if not results[0].passed:
                logger.warning("Tests failed in %s", root)

        threshold = (
            config.coverage_threshold
            if config.coverage_threshold is not None
            else self.coverage_threshold
        )
        results.append(self._check_coverage(root, threshold))

        summary = ValidationSummary(
            passed=all(r.passed for r in results),
            results=results,
            total_duration_ms=self._elapsed_ms(started),
        )
        logger.info(
            "Validation in %s %s: %s",
            root,
            "passed" if summary.passed else "failed",
            ", ".join(f"{r.name}={'ok' if r.passed else 'FAIL'}" for r in results),
        )
        return summary

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def _run_command(self, name: str, command: list[str], root: Path) -> ValidationResult:
        started = self._clock()
        logger.debug("Running validation step %s: %s", name, command)
        try:
            result = subprocess.run(
                command,
                cwd=root,
                capture_output=True,
                text=True,
                timeout=self.timeout_ms / 1000,
                env={**build_agent_env(self.env_allowlist), "CI": "true"},
            )
        except subprocess.TimeoutExpired:
            logger.error("Validation step %s timed out after %dms", name, self.timeout_ms)
            return ValidationResult(
                name=name,
                passed=False,
                output=f"{name} timed out after {self.timeout_ms // 1000} seconds",
                duration_ms=self._elapsed_ms(started),
            )
        except OSError as e:
            logger.error("Failed to run validation step %s: %s", name, e)
            return ValidationResult(
                name=name,
                passed=False,
                output=f"Failed to run {command[0]}: {e}",
                duration_ms=self._elapsed_ms(started),
            )

        output = (result.stdout or "") + (result.stderr or "")
        return ValidationResult(
            name=name,
            passed=result.returncode == 0,
            output=output[-OUTPUT_TAIL_CHARS:],
            duration_ms=self._elapsed_ms(started),
        )

    def _run_tests(self, root: Path) -> ValidationResult:
        if _has_npm_script(root, "test"):
            return self._run_command("tests", ["npm", "test"], root)
        if (root / "tests").is_dir() and any((root / m).exists() for m in _PYTEST_MARKERS):
            return self._run_command("tests", [sys.executable, "-m", "pytest", "-q"], root)
        return _skipped("tests", "No test suite found, skipping")

    def _run_lint(self, root: Path) -> ValidationResult:
        if _has_npm_script(root, "lint"):
            return self._run_command("lint", ["npm", "run", "lint"], root)
        return _skipped("lint", "No lint script found, skipping")

    def _run_typecheck(self, root: Path) -> ValidationResult:
        if (root / "tsconfig.json").exists():
            return self._run_command("typecheck", ["npx", "tsc", "--noEmit"], root)
        return _skipped("typecheck", "No tsconfig.json found, skipping")

    def _check_coverage(self, root: Path, threshold: float) -> ValidationResult:
        if threshold <= 0:
            return _skipped("coverage", "Coverage threshold not set, skipping")

        started = self._clock()
        percent = _read_coverage(root)
        if percent is None:
            return _skipped("coverage", "No coverage report found, skipping")

        return ValidationResult(
            name="coverage",
            passed=percent >= threshold,
            output=f"Line coverage: {percent:.1f}% (threshold: {threshold:g}%)",
            duration_ms=self._elapsed_ms(started),
        )


def _skipped(name: str, reason: str) -> ValidationResult:
    return ValidationResult(name=name, passed=True, output=reason)


def _load_json(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug("Could not read %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def _has_npm_script(root: Path, script: str) -> bool:
    package = root / "package.json"
    if not package.exists():
        return False
    data = _load_json(package) or {}
    return bool((data.get("scripts") or {}).get(script))


def _read_coverage(root: Path) -> float | None:
    """Read total line coverage from an istanbul or coverage.py JSON report."""
    istanbul = _load_json(root / "coverage" / "coverage-summary.json")
    if istanbul is not None:
        pct = ((istanbul.get("total") or {}).get("lines") or {}).get("pct")
        if isinstance(pct, int | float):
            return float(pct)

    coverage_py = _load_json(root / "coverage.json")
    if coverage_py is not None:
        pct = (coverage_py.get("totals") or {}).get("percent_covered")
        if isinstance(pct, int | float):
            return float(pct)
    return None
