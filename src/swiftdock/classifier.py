"""Classify container output into clean / warning / retryable / error / fatal-docker.

Two independent oracles decide whether a run failed: the exit code, and a
substring scan of the output, since some toolchains print ``error:`` while
still exiting 0.  The scan is a fixed, ordered list of rules:

1. package-reset patterns  -> retryable, requires a package reset
2. retryable patterns      -> retryable
3. generic error patterns  -> error
4. warning patterns        -> warning (recorded alongside an error, but the
                              error wins for control flow)

Fatal-docker patterns are checked before all of the above and always win.
A run that hit its timeout is retryable whatever the tables say.
"""

from __future__ import annotations

from swiftdock.constants import TIMEOUT_MARKER
from swiftdock.models import (
    CLASSIFICATION_CLEAN,
    CLASSIFICATION_ERROR,
    CLASSIFICATION_FATAL_DOCKER,
    CLASSIFICATION_RETRYABLE,
    CLASSIFICATION_WARNING,
    Classification,
    ResponsePatterns,
    RunOutcome,
)

DEFAULT_PATTERNS = ResponsePatterns()


def _first_match(output: str, patterns: tuple[str, ...]) -> str:
    for pattern in patterns:
        if pattern and pattern in output:
            return pattern
    return ""


def classify_output(output: str, patterns: ResponsePatterns | None = None) -> Classification:
    patterns = patterns or DEFAULT_PATTERNS

    fatal = _first_match(output, patterns.fatal_docker)
    if fatal:
        return Classification(kind=CLASSIFICATION_FATAL_DOCKER, matched_pattern=fatal)

    has_warnings = bool(_first_match(output, patterns.warning))

    reset = _first_match(output, patterns.package_reset)
    if reset:
        return Classification(
            kind=CLASSIFICATION_RETRYABLE,
            requires_reset=True,
            has_warnings=has_warnings,
            matched_pattern=reset,
        )
    retryable = _first_match(output, patterns.retryable)
    if retryable:
        return Classification(
            kind=CLASSIFICATION_RETRYABLE,
            has_warnings=has_warnings,
            matched_pattern=retryable,
        )
    error = _first_match(output, patterns.error)
    if error:
        return Classification(
            kind=CLASSIFICATION_ERROR,
            has_warnings=has_warnings,
            matched_pattern=error,
        )
    if has_warnings:
        return Classification(
            kind=CLASSIFICATION_WARNING,
            has_warnings=True,
            matched_pattern=_first_match(output, patterns.warning),
        )
    return Classification(kind=CLASSIFICATION_CLEAN)


def classify_outcome(outcome: RunOutcome, patterns: ResponsePatterns | None = None) -> Classification:
    """Combine the output scan with the exit code.

    A non-zero exit without any recognised error text is a plain
    (non-retryable) error.
    """
    text = outcome.output
    if outcome.stderr:
        text = f"{text}\n{outcome.stderr}" if text else outcome.stderr
    classification = classify_output(text, patterns)
    if outcome.timed_out and classification.kind not in {
        CLASSIFICATION_FATAL_DOCKER,
        CLASSIFICATION_RETRYABLE,
    }:
        return Classification(
            kind=CLASSIFICATION_RETRYABLE,
            has_warnings=classification.has_warnings,
            matched_pattern=TIMEOUT_MARKER,
        )
    if outcome.exit_code != 0 and classification.kind in {
        CLASSIFICATION_CLEAN,
        CLASSIFICATION_WARNING,
    }:
        return Classification(
            kind=CLASSIFICATION_ERROR,
            has_warnings=classification.has_warnings,
            matched_pattern=f"exit code {outcome.exit_code}",
        )
    return classification
