"""Environment variable helpers for schema documents.

Schema documents may reference ${VAR_NAME} in string values (enum values,
defaults, rule messages); they are expanded when the document is loaded.
.env files are read with python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "expand_document", "load_env_file"]

# ${VAR_NAME} only; a bare $ is common in rule expressions and messages
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in the current
              directory and its parents.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand ${VAR_NAME} references in a string.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for missing variables

    Example:
        >>> os.environ["MIN_AGE"] = "18"
        >>> expand_env_vars("age < ${MIN_AGE}")
        'age < 18'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return str(match.group(0))
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_document(document: Any, *, strict: bool = False) -> Any:
    """Recursively expand environment variables in a parsed document.

    Mappings and lists are copied; non-string scalars are returned as-is.
    """
    if isinstance(document, str):
        return expand_env_vars(document, strict=strict)
    if isinstance(document, dict):
        expanded: Dict[Any, Any] = {}
        for key, value in document.items():
            expanded[key] = expand_document(value, strict=strict)
        return expanded
    if isinstance(document, list):
        items: List[Any] = [expand_document(item, strict=strict) for item in document]
        return items
    return document
