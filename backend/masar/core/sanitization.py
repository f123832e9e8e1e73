"""Input sanitization for untrusted request data.

Security: Removes markup and script vectors from user-supplied text before it
is stored or re-rendered, and rejects payloads that carry SQL injection
signatures.

Two modes:
- sanitize() / sanitize_deep(): strip dangerous content and keep going.
  Malformed-but-innocent input is cleaned, never rejected.
- sanitize_for_storage(): fail closed. A single string leaf that matches an
  SQL injection signature rejects the whole payload with the field path.

Handlers choose which fields go through sanitize_for_storage(). Passwords and
email addresses legitimately contain quotes and ``#`` and are validated by
their own rules instead.
"""

import logging
import re
from collections.abc import Callable, Mapping

from masar.core.errors import InjectionDetectedError, ValidationError

logger = logging.getLogger(__name__)

# =============================================================================
# Types
# =============================================================================

JsonScalar = str | int | float | bool | None
JsonValue = JsonScalar | list["JsonValue"] | tuple["JsonValue", ...] | Mapping[str, "JsonValue"]

# Root path label when a bare string (not a field of an object) is checked
_ROOT_FIELD = "value"

_MAX_NESTING_DEPTH = 64
"""Maximum nesting depth for recursive sanitization.

Prevents stack exhaustion on crafted deeply-nested payloads. Deeper payloads
are rejected rather than passed through unsanitized.
"""

# =============================================================================
# Markup Patterns
# =============================================================================

# Script/style elements are removed with their content, not just their tags:
# "<script>x</script>hi" must become "hi", not "xhi".
_SCRIPT_STYLE_PATTERN = re.compile(
    r"<\s*(script|style)\b[^>]*>.*?<\s*/\s*\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_TAG_PATTERN = re.compile(r"<[^>]*>")
# Unbalanced brackets left over after tag removal ("<img src=x" has no ">")
_ANGLE_BRACKET_PATTERN = re.compile(r"[<>]")
_DANGEROUS_SCHEME_PATTERN = re.compile(
    r"(?:javascript|vbscript|data)\s*:", re.IGNORECASE
)
_EVENT_HANDLER_PATTERN = re.compile(r"\bon\w+\s*=", re.IGNORECASE)

# =============================================================================
# SQL Injection Signatures
# =============================================================================

# Each tuple: (signature name, compiled pattern). Percent-encoded variants are
# matched because some clients submit form values without decoding them.
_SQL_INJECTION_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    # String terminators and line comments: ' %27 -- # %23
    ("quote_or_comment", re.compile(r"%27|'|--|%23|#", re.IGNORECASE)),
    # Block comments: /* ... */
    ("block_comment", re.compile(r"/\*.*?\*/", re.DOTALL)),
    # Assignment followed by a terminator: = ... ' / -- / ;
    (
        "assignment_terminator",
        re.compile(r"(?:%3D|=)[^\n]*(?:%27|'|--|%3B|;)", re.IGNORECASE),
    ),
    # Quote immediately followed by OR: 'or
    (
        "quoted_or",
        re.compile(r"\w*(?:%27|')(?:%6F|o|%4F)(?:%72|r|%52)", re.IGNORECASE),
    ),
    # Tautology: or 1=1
    (
        "or_tautology",
        re.compile(r"\bor\b\s+(\w+)\s*=\s*\1\b", re.IGNORECASE),
    ),
    # UNION-based extraction: 'union / union select
    (
        "union",
        re.compile(
            r"(?:%27|')union|\bunion\b\s+(?:all\s+)?\bselect\b", re.IGNORECASE
        ),
    ),
    # Stored procedure invocation: exec sp_... / exec xp_...
    ("stored_procedure", re.compile(r"exec(?:\s|\+)+(?:s|x)p\w+", re.IGNORECASE)),
]


# =============================================================================
# String Sanitization
# =============================================================================


def _strip_once(text: str) -> str:
    """Apply every markup removal pattern a single time."""
    text = _SCRIPT_STYLE_PATTERN.sub("", text)
    text = _TAG_PATTERN.sub("", text)
    text = _ANGLE_BRACKET_PATTERN.sub("", text)
    text = _DANGEROUS_SCHEME_PATTERN.sub("", text)
    return _EVENT_HANDLER_PATTERN.sub("", text)


def sanitize(value: str | None) -> str:
    """Strip HTML tags, dangerous URI schemes and inline event handlers.

    Removal is repeated until the text stops changing, so fragments that
    reassemble into a payload after one pass (``javajavascript:script:``,
    ``<scr<script>ipt>``) are removed too.

    Args:
        value: Untrusted text. ``None`` and empty strings are allowed.

    Returns:
        Cleaned, trimmed text. Empty string for empty input.
    """
    if not value:
        return ""

    text = value.replace("\x00", "")
    while True:
        cleaned = _strip_once(text)
        if cleaned == text:
            break
        text = cleaned
    return text.strip()


def contains_sql_injection(value: str | None) -> bool:
    """Check whether text matches any SQL injection signature.

    Args:
        value: Text to check.

    Returns:
        True if any signature matches, False otherwise (including empty input).
    """
    if not value:
        return False
    return any(pattern.search(value) for _, pattern in _SQL_INJECTION_PATTERNS)


# =============================================================================
# Structural Visitor
# =============================================================================


def _child_path(parent: str, key: str | int) -> str:
    """Build a field path: ``a.b`` for mapping keys, ``a[0]`` for indexes."""
    if isinstance(key, int):
        return f"{parent or _ROOT_FIELD}[{key}]"
    return f"{parent}.{key}" if parent else key


def _visit(
    value: JsonValue,
    on_string: Callable[[str, str], str],
    path: str = "",
    depth: int = 0,
) -> JsonValue:
    """Rebuild a JSON-like structure, transforming every string leaf.

    Variants: string leaf, list/tuple, mapping, other primitive. Returns a new
    structure; the input is never mutated.

    Args:
        value: Structure to walk.
        on_string: Called as ``on_string(text, field_path)`` for each leaf.
        path: Field path of ``value``.
        depth: Current nesting depth.

    Raises:
        ValidationError: If nesting exceeds the depth limit.
    """
    if depth > _MAX_NESTING_DEPTH:
        raise ValidationError("Payload is too deeply nested")
    if isinstance(value, str):
        return on_string(value, path or _ROOT_FIELD)
    if isinstance(value, Mapping):
        return {
            key: _visit(item, on_string, _child_path(path, key), depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        items = [
            _visit(item, on_string, _child_path(path, index), depth + 1)
            for index, item in enumerate(value)
        ]
        return tuple(items) if isinstance(value, tuple) else items
    return value


def sanitize_deep(value: JsonValue) -> JsonValue:
    """Apply sanitize() to every string leaf of a nested structure.

    Numbers, booleans and None are preserved, as are mapping keys and the
    overall shape.

    Args:
        value: Parsed request data (mapping, list, or scalar).

    Returns:
        A sanitized copy.
    """
    return _visit(value, lambda text, _path: sanitize(text))


def _reject_injection(text: str, path: str) -> str:
    # Checked before and after stripping: tag removal can join fragments
    # into a signature ("-<b>-" becomes "--").
    cleaned = sanitize(text)
    if contains_sql_injection(text) or contains_sql_injection(cleaned):
        # Field path only; the matched value is attacker-controlled
        logger.warning("Injection signature rejected in field %s", path)
        raise InjectionDetectedError(path)
    return cleaned


def sanitize_for_storage(value: JsonValue) -> JsonValue:
    """Sanitize for persistence, failing closed on SQL injection signatures.

    Injection attempts indicate intent, not malformed input, so nothing is
    stripped-and-kept: the first matching field rejects the whole call and no
    sanitized copy is returned. Each field is checked both as received and
    after sanitizing, so a returned value never matches a signature.

    Args:
        value: Parsed request data (mapping, list, or scalar).

    Returns:
        A sanitized copy when no field matches.

    Raises:
        InjectionDetectedError: If any string leaf matches a signature.
        ValidationError: If nesting exceeds the depth limit.
    """
    return _visit(value, _reject_injection)
