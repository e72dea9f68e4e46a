# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Response content validation.

Catches wrong content behind a healthy status: maintenance pages,
defacement, breaking API changes, truncated responses.  Exactly one mode
per check (keyword, regex, hash, json, size).  Validation failures are
reported, never used to change the check's up/down status.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..schemas import ContentValidationConfig

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class ContentValidationResult:
    passed: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    content_hash: str | None = None
    response_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"passed": self.passed, "errors": list(self.errors), "warnings": list(self.warnings)}
        if self.content_hash is not None:
            d["contentHash"] = self.content_hash
        if self.response_size is not None:
            d["responseSize"] = self.response_size
        return d


def generate_content_hash(content: str, algorithm: str = "sha256") -> str:
    """Hex digest of the UTF-8 encoded *content*."""
    return hashlib.new(algorithm, content.encode("utf-8")).hexdigest()


def normalize_content(content: str) -> str:
    """Fold whitespace runs so formatting-only changes do not look like content changes."""
    return _WHITESPACE_RE.sub(" ", content).strip()


def _byte_size(content: str) -> int:
    return len(content.encode("utf-8"))


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _validate_keywords(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    haystack = content if config.case_sensitive else content.lower()
    errors: list[str] = []
    for keyword in config.must_contain:
        needle = keyword if config.case_sensitive else keyword.lower()
        if needle not in haystack:
            errors.append(f'Required keyword not found: "{keyword}"')
    for keyword in config.must_not_contain:
        needle = keyword if config.case_sensitive else keyword.lower()
        if needle in haystack:
            errors.append(f'Forbidden keyword found: "{keyword}"')
    return ContentValidationResult(passed=not errors, errors=errors, response_size=_byte_size(content))


def _validate_regex(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    size = _byte_size(content)
    if not config.pattern:
        return ContentValidationResult(passed=False, errors=["Regex pattern not specified"], response_size=size)
    try:
        regex = re.compile(config.pattern)
    except re.error as e:
        return ContentValidationResult(passed=False, errors=[f"Invalid regex pattern: {e}"], response_size=size)

    matches = regex.search(content) is not None
    errors: list[str] = []
    if config.should_match and not matches:
        errors.append(f"Content does not match pattern: {config.pattern}")
    elif not config.should_match and matches:
        errors.append(f"Content matches forbidden pattern: {config.pattern}")
    return ContentValidationResult(passed=not errors, errors=errors, response_size=size)


def _validate_hash(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    digest = generate_content_hash(content, config.algorithm)
    errors: list[str] = []
    warnings: list[str] = []
    expected = (config.expected_hash or "").strip().lower()
    if expected and digest != expected:
        detail = f"(expected: {expected[:12]}..., got: {digest[:12]}...)"
        if config.detect_changes:
            warnings.append(f"Content changed - hash mismatch {detail}")
        else:
            errors.append(f"Content hash mismatch {detail}")
    return ContentValidationResult(
        passed=not errors,
        errors=errors,
        warnings=warnings,
        content_hash=digest,
        response_size=_byte_size(content),
    )


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _has_path(document: Any, dotted: str) -> bool:
    value = document
    for key in dotted.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return False
    return True


def _schema_errors(document: Any, schema: dict[str, Any], prefix: str = "") -> list[str]:
    if not isinstance(document, dict):
        where = f' "{prefix.rstrip(".")}"' if prefix else ""
        return [f"Schema validation:{where} expected object, got {_json_type(document)}"]

    errors: list[str] = []
    for key, expected in schema.items():
        path = f"{prefix}{key}"
        if key not in document:
            errors.append(f'Schema validation: Missing key "{path}"')
            continue
        actual = _json_type(document[key])
        if isinstance(expected, str):
            if actual != expected:
                errors.append(f'Schema validation: "{path}" should be {expected}, got {actual}')
        elif isinstance(expected, dict):
            if actual == "object":
                errors.extend(_schema_errors(document[key], expected, prefix=f"{path}."))
            else:
                errors.append(f'Schema validation: "{path}" should be object, got {actual}')
    return errors


def _validate_json(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    size = _byte_size(content)
    try:
        document = json.loads(content)
    except ValueError as e:
        return ContentValidationResult(passed=False, errors=[f"Invalid JSON: {e}"], response_size=size)

    errors = [f"Required field missing: {f}" for f in config.required_fields if not _has_path(document, f)]
    if config.json_schema:
        errors.extend(_schema_errors(document, config.json_schema))
    return ContentValidationResult(passed=not errors, errors=errors, response_size=size)


def _validate_size(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    size = _byte_size(content)
    errors: list[str] = []
    if config.min_bytes is not None and size < config.min_bytes:
        errors.append(f"Response too small: {size} bytes (expected at least {config.min_bytes} bytes)")
    if config.max_bytes is not None and size > config.max_bytes:
        errors.append(f"Response too large: {size} bytes (expected at most {config.max_bytes} bytes)")
    return ContentValidationResult(passed=not errors, errors=errors, response_size=size)


_VALIDATORS = {
    "keyword": _validate_keywords,
    "regex": _validate_regex,
    "hash": _validate_hash,
    "json": _validate_json,
    "size": _validate_size,
}


def validate_content(content: str, config: ContentValidationConfig) -> ContentValidationResult:
    """Run the single mode *config* selects. A disabled config always passes."""
    if not config.enabled:
        return ContentValidationResult(passed=True)
    validator = _VALIDATORS.get(config.type)
    if validator is None:
        return ContentValidationResult(
            passed=False,
            errors=[f"Unknown validation type: {config.type}"],
            response_size=_byte_size(content),
        )
    return validator(content, config)
