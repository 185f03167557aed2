"""Branch and ref name validation.

Ref names end up as arguments of git commands, so every name that
comes from configuration or the command line is checked here before
any command is built.
"""

import re

from harbinger.core.errors import InvalidRefNameError

# Characters that could alter a shell command line
_FORBIDDEN_CHARS = re.compile(r"""[;&|$(){}\[\]<>'"\\]""")

# Whitespace and ASCII control characters
_SPACE_OR_CONTROL = re.compile(r"[\s\x00-\x1f\x7f]")


def validate_ref_name(ref: str) -> str:
    """Validate a branch or ref name.

    Args:
        ref: Name to check (e.g. "main", "origin/feature/x")

    Returns:
        The name unchanged, so calls can be used inline

    Raises:
        InvalidRefNameError: If the name is empty, contains shell
            metacharacters, whitespace or control characters, starts
            with '-', starts or ends with '/', or contains '..'
    """
    if not ref:
        raise InvalidRefNameError(ref, "branch name cannot be empty")

    match = _FORBIDDEN_CHARS.search(ref)
    if match:
        raise InvalidRefNameError(
            ref, f"contains invalid character {match.group(0)!r}"
        )

    match = _SPACE_OR_CONTROL.search(ref)
    if match:
        raise InvalidRefNameError(
            ref, f"contains whitespace or control character {match.group(0)!r}"
        )

    # Would be read as an option by git
    if ref.startswith("-"):
        raise InvalidRefNameError(ref, "cannot start with '-'")

    if ref.startswith("/") or ref.endswith("/"):
        raise InvalidRefNameError(ref, "cannot start or end with '/'")

    if ".." in ref:
        raise InvalidRefNameError(ref, "cannot contain '..'")

    return ref


def is_valid_ref_name(ref: str) -> bool:
    """Return True if validate_ref_name() would accept the name."""
    try:
        validate_ref_name(ref)
    except InvalidRefNameError:
        return False
    return True
