from __future__ import annotations

from importlib import import_module
import logging
import shlex
import subprocess

from sqlalchemy.engine import Connection

from jobs_shared.interface import Transform
from jobs_worker.config import Settings

logger = logging.getLogger(__name__)


class TransformError(RuntimeError):
    pass


class ConfigError(ValueError):
    pass


class SubprocessTransform:
    """Run an external command as the payload transform.

    The payload is written to the command's stdin; the last non-empty stdout
    line is the amended payload.
    """

    def __init__(self, command: list[str], *, timeout_seconds: float = 30.0) -> None:
        if not command:
            raise ConfigError("transform command must not be empty")
        self._command = list(command)
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_string(cls, command: str, *, timeout_seconds: float = 30.0) -> SubprocessTransform:
        return cls(shlex.split(command), timeout_seconds=timeout_seconds)

    def __call__(self, connection: Connection, payload: str) -> str:
        try:
            completed = subprocess.run(
                self._command,
                input=payload,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise TransformError(
                f"transform command timed out after {self._timeout_seconds:g}s"
            ) from exc
        except OSError as exc:
            raise TransformError(f"transform command could not start: {exc}") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.strip() or completed.stdout.strip()
            stderr_first_line = stderr.splitlines()[0] if stderr else "<empty>"
            logger.debug(
                "transform command failed exit=%s stderr_first=%s",
                completed.returncode,
                stderr_first_line,
            )
            raise TransformError(
                f"transform command failed (exit={completed.returncode}): {stderr_first_line}"
            )

        output = [line for line in completed.stdout.splitlines() if line.strip()]
        if not output:
            raise TransformError("transform command produced no output")
        return output[-1].strip()


def load_transform(dotted_path: str) -> Transform:
    """Import ``package.module:attribute`` and return it as a transform.

    The target is called as ``fn(connection, payload)`` on every attempt and
    must return the amended payload string. Only callability is checked here;
    a callable with another signature fails each attempt with ``TypeError``.
    """
    module_name, sep, attribute = dotted_path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigError(f"transform must look like 'module:attribute', got {dotted_path!r}")

    try:
        module = import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import transform module {module_name!r}: {exc}") from exc

    target = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigError(f"{module_name!r} has no attribute {attribute!r}") from exc

    if not callable(target):
        raise ConfigError(f"transform {dotted_path!r} is not callable")
    return target


def transform_from_settings(settings: Settings) -> Transform:
    if settings.transform and settings.transform_command:
        raise ConfigError("set only one of WORKER_TRANSFORM and WORKER_TRANSFORM_COMMAND")
    if settings.transform:
        return load_transform(settings.transform)
    if settings.transform_command:
        return SubprocessTransform.from_string(
            settings.transform_command,
            timeout_seconds=settings.transform_timeout_seconds,
        )
    raise ConfigError("no transform configured; set WORKER_TRANSFORM or WORKER_TRANSFORM_COMMAND")
