"""
Environment variable management with .env file support.

Loads ``.env`` files, reads typed ``ORDERSAGA_*`` settings and substitutes
``${VAR}`` references inside YAML configuration values.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ENV_PREFIX = "ORDERSAGA_"

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


def parse_bool(value: str, key: str) -> bool:
    """Parse a boolean setting. Raises ValueError naming ``key`` on anything else."""
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    msg = f"{key} must be a boolean (true/false, yes/no, on/off, 1/0), got {value!r}"
    raise ValueError(msg)


class EnvManager:
    """
    Manages environment variables for ordersaga deployments.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> storage_url = env.get("ORDERSAGA_STORAGE_URL", "memory://")
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Initialize the environment manager.

        Args:
            project_root: Root directory of the project (searches for .env here)
            auto_load: Automatically load .env file if found
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from .env file.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
            override: Whether to override existing environment variables

        Returns:
            True if .env file was loaded, False otherwise
        """
        env_file = self.project_root / ".env" if env_file is None else Path(env_file)

        if not env_file.exists():
            return False

        load_dotenv(env_file, override=override)
        self._loaded = True
        return True

    def get(
        self,
        key: str,
        default: str | None = None,
        required: bool = False
    ) -> str | None:
        """
        Get an environment variable value.

        Raises:
            ValueError: If required=True and variable not found
        """
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)

        return value

    def get_bool(self, key: str, default: bool = False, strict: bool = False) -> bool:
        """
        Get environment variable as boolean.

        Unset or empty gives ``default``. Unrecognized values give ``default``,
        or raise ValueError when ``strict``.
        """
        raw = self.get(key)
        if raw is None or not raw.strip():
            return default
        try:
            return parse_bool(raw, key)
        except ValueError:
            if strict:
                raise
            return default

    def get_int(self, key: str, default: int = 0, strict: bool = False) -> int:
        """Get environment variable as integer (see ``get_bool`` for ``strict``)."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError as e:
            if strict:
                msg = f"{key} must be an integer, got {raw!r}"
                raise ValueError(msg) from e
            return default

    def get_float(self, key: str, default: float = 0.0, strict: bool = False) -> float:
        """Get environment variable as float (see ``get_bool`` for ``strict``)."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError as e:
            if strict:
                msg = f"{key} must be a number, got {raw!r}"
                raise ValueError(msg) from e
            return default

    def substitute(self, text: str) -> str:
        """
        Substitute environment variables in text using ${VAR} or $VAR syntax.

        Supports:
        - ${VAR} - variable substitution
        - ${VAR:-default} - with default value
        - ${VAR:?error} - required variable (raises error if not set)

        Example:
            >>> os.environ["PAYMENT_HOST"] = "payments.internal"
            >>> env.substitute("https://${PAYMENT_HOST}/v1")
            'https://payments.internal/v1'
        """
        pattern = r'\$\{([^}:]+)(?::([?-])([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            operator = match.group(2)
            operand = match.group(3)

            value = os.environ.get(var_name)

            if operator == '-':  # ${VAR:-default}
                return value if value is not None else operand
            if operator == '?':  # ${VAR:?error}
                if value is None:
                    error_msg = operand or f"Required variable not set: {var_name}"
                    raise ValueError(error_msg)
                return value
            return value if value is not None else f"${{{var_name}}}"

        text = re.sub(pattern, replace, text)
        return re.sub(
            r'\$([A-Z_][A-Z0-9_]*)', lambda m: os.environ.get(m.group(1), m.group(0)), text
        )

    def substitute_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively substitute environment variables in dictionary values."""
        result = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self.substitute(value)
            elif isinstance(value, dict):
                result[key] = self.substitute_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self.substitute(item) if isinstance(item, str)
                    else self.substitute_dict(item) if isinstance(item, dict)
                    else item
                    for item in value
                ]
            else:
                result[key] = value
        return result

