"""Secure methods for reading secrets (passwords, secret access keys).

Secrets are kept out of process listings, shell history and logs by never
taking them as command-line arguments. Three sources, in priority order:

  1. Environment variable (``--secret-env NAME``)
  2. Standard input, one line (``--secret-stdin``)
  3. Interactive prompt on the controlling terminal with echo disabled

Example (scripted use):

    echo "newSecretKeyEXAMPLE" | globus-connect-server user-credential \\
        s3-keys-update ... --secret-stdin
"""

from __future__ import annotations

import getpass
import os
import sys
import warnings
from dataclasses import dataclass
from typing import Mapping, Optional, TextIO

from .exceptions import (
    EmptySecretError,
    EnvMissingError,
    SecretValidationError,
    TerminalUnavailableError,
)

DEFAULT_PROMPT = "Enter secret"


class SecureString:
    """String wrapper that renders as ``(redacted)`` in str/repr/format.

    Use ``.value`` only at the point the secret is sent somewhere.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    @property
    def value(self) -> str:
        return self._value

    def clear(self) -> None:
        self._value = ""

    def __str__(self) -> str:
        if self._value == "":
            return "(empty)"
        return "(redacted)"

    def __repr__(self) -> str:
        return f"SecureString({self})"

    def __format__(self, format_spec: str) -> str:
        return format(str(self), format_spec)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecureString):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass
class ReadSecretOptions:
    """How to read one secret value."""

    prompt: str = DEFAULT_PROMPT
    use_stdin: bool = False
    env_var: Optional[str] = None
    allow_empty: bool = False


def read_secret(
    options: ReadSecretOptions,
    *,
    environ: Optional[Mapping[str, str]] = None,
    stdin: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> SecureString:
    """Read a secret using the highest-priority source configured.

    Raises:
        EnvMissingError: ``env_var`` is set but the variable is absent.
        TerminalUnavailableError: Prompting needs a terminal and none exists.
        EmptySecretError: Trimmed value is empty and empty is not allowed.
    """
    if options.env_var:
        secret = _read_from_env(options.env_var, os.environ if environ is None else environ)
    elif options.use_stdin:
        secret = _read_from_stdin(stdin or sys.stdin)
    else:
        secret = _read_from_prompt(options.prompt or DEFAULT_PROMPT, stderr or sys.stderr)

    secret = secret.strip()
    if not options.allow_empty and secret == "":
        raise EmptySecretError()
    return SecureString(secret)


def _read_from_env(name: str, environ: Mapping[str, str]) -> str:
    # Absent means misconfigured; never fall through to another source.
    if name not in environ:
        raise EnvMissingError(name)
    return environ[name]


def _read_from_stdin(stream: TextIO) -> str:
    return stream.readline()


def _read_from_prompt(prompt: str, stream: TextIO) -> str:
    # getpass writes the prompt and the trailing newline to ``stream`` and
    # reads from the controlling terminal with echo off. Without a terminal
    # it would fall back to echoing stdin, which is refused here.
    with warnings.catch_warnings():
        warnings.simplefilter("error", getpass.GetPassWarning)
        try:
            return getpass.getpass(f"{prompt}: ", stream=stream)
        except getpass.GetPassWarning as exc:
            raise TerminalUnavailableError() from exc
        except EOFError as exc:
            raise TerminalUnavailableError("Terminal closed before a secret was entered") from exc


def validate_secret(secret: str | SecureString, min_length: int = 1, max_length: int = 0) -> None:
    """Check a secret against length bounds; ``max_length`` 0 means unbounded.

    Raises:
        EmptySecretError: Secret is empty or only whitespace.
        SecretValidationError: Secret is outside the length bounds.
    """
    if isinstance(secret, SecureString):
        secret = secret.value
    if secret.strip() == "":
        raise EmptySecretError()
    if len(secret) < min_length:
        raise SecretValidationError(f"Secret too short (min {min_length} characters)")
    if max_length > 0 and len(secret) > max_length:
        raise SecretValidationError(f"Secret too long (max {max_length} characters)")
