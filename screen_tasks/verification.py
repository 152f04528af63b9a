"""Outcome verification: did a step produce the page it promised?

Each declared clause of an :class:`ExpectedOutcome` is checked
independently against the page after the action; the step passes only
when all of them pass. An outcome with no clauses always fails.
"""

import logging
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from screen_tasks.dom.elements import ElementIndex
from screen_tasks.dom.normalizer import DEFAULT_HASH_MAX_BYTES, hash_dom
from screen_tasks.models.result import ClauseResult, VerificationResult
from screen_tasks.prompts.schemas import ElementExpectation, ExpectedOutcome
from screen_tasks.utils.urls import has_significant_url_change

logger = logging.getLogger(__name__)


def coerce_expected_outcome(expected: ExpectedOutcome | dict[str, Any] | None) -> ExpectedOutcome:
    """Accept a model, a (camelCase or snake_case) dict, or None."""
    if expected is None:
        return ExpectedOutcome()
    if isinstance(expected, ExpectedOutcome):
        return expected
    return ExpectedOutcome.model_validate(expected)


def verify(
    before_dom: str,
    after_dom: str,
    expected_outcome: ExpectedOutcome | dict[str, Any] | None,
    before_url: str | None = None,
    after_url: str | None = None,
    hash_max_bytes: int = DEFAULT_HASH_MAX_BYTES,
) -> VerificationResult:
    """Decide PASS/FAIL for a step.

    Args:
        before_dom: Page DOM before the action.
        after_dom: Page DOM after the action.
        expected_outcome: The predicate declared with the action.
        before_url: URL before the action (needed for ``url_should_change``).
        after_url: URL after the action.
        hash_max_bytes: Byte budget for the before/after content hashes.

    Returns:
        VerificationResult; ``reason`` lists every failing clause.
    """
    before_hash = hash_dom(before_dom or "", hash_max_bytes)
    after_hash = hash_dom(after_dom or "", hash_max_bytes)

    try:
        outcome = coerce_expected_outcome(expected_outcome)
    except SchemaValidationError as e:
        return VerificationResult(
            passed=False,
            reason=f"Invalid expected outcome: {e.error_count()} schema error(s)",
            before_hash=before_hash,
            after_hash=after_hash,
        )

    if outcome.is_empty():
        return VerificationResult(
            passed=False,
            reason="Expected outcome declares no clauses; refusing to pass an unverifiable step",
            before_hash=before_hash,
            after_hash=after_hash,
        )

    index = ElementIndex.from_dom(after_dom or "")
    clauses: list[ClauseResult] = []

    if outcome.element_should_exist:
        selector = outcome.element_should_exist
        layer = index.match_selector(selector)
        clauses.append(ClauseResult(
            clause="element_should_exist",
            passed=layer is not None,
            detail=f"'{selector}' found by {layer}" if layer else f"element '{selector}' not found",
        ))

    if outcome.element_should_not_exist:
        selector = outcome.element_should_not_exist
        layer = index.match_selector(selector)
        clauses.append(ClauseResult(
            clause="element_should_not_exist",
            passed=layer is None,
            detail=f"'{selector}' is absent" if layer is None else f"element '{selector}' still present ({layer})",
        ))

    if outcome.element_should_have_text is not None:
        expectation = outcome.element_should_have_text
        ok = index.has_text(expectation.selector, expectation.text)
        clauses.append(ClauseResult(
            clause="element_should_have_text",
            passed=ok,
            detail=(
                f"'{expectation.selector}' contains '{expectation.text}'"
                if ok else f"text '{expectation.text}' not found for '{expectation.selector}'"
            ),
        ))

    if outcome.url_should_change is not None:
        clauses.append(_check_url(outcome.url_should_change, before_url, after_url))

    if outcome.attribute_changes:
        missing = [
            f"{change.attribute}={change.expected_value}"
            for change in outcome.attribute_changes
            if not index.has_attribute_value(change.attribute, change.expected_value)
        ]
        clauses.append(ClauseResult(
            clause="attribute_changes",
            passed=not missing,
            detail="attributes match" if not missing else f"attribute not set: {', '.join(missing)}",
        ))

    if outcome.elements_to_appear:
        missing = [
            _describe(entry) for entry in outcome.elements_to_appear
            if not _element_present(index, entry)
        ]
        clauses.append(ClauseResult(
            clause="elements_to_appear",
            passed=not missing,
            detail="elements appeared" if not missing else f"{', '.join(missing)} not found",
        ))

    if outcome.elements_to_disappear:
        remaining = [
            _describe(entry) for entry in outcome.elements_to_disappear
            if _element_present(index, entry, appearing=False)
        ]
        clauses.append(ClauseResult(
            clause="elements_to_disappear",
            passed=not remaining,
            detail="elements disappeared" if not remaining else f"{', '.join(remaining)} still present",
        ))

    failures = [c for c in clauses if not c.passed]
    if failures:
        reason = "; ".join(c.detail for c in failures)
        logger.debug("Verification failed: %s", reason)
    else:
        reason = f"All {len(clauses)} expected outcome clause(s) passed"

    return VerificationResult(
        passed=not failures,
        reason=reason,
        clauses=clauses,
        before_hash=before_hash,
        after_hash=after_hash,
    )


def _check_url(should_change: bool, before_url: str | None, after_url: str | None) -> ClauseResult:
    if before_url is None or after_url is None:
        return ClauseResult(
            clause="url_should_change",
            passed=False,
            detail="URL change declared but before/after URL unavailable",
        )
    changed = has_significant_url_change(before_url, after_url)
    if should_change:
        detail = f"URL changed to {after_url}" if changed else f"URL did not change ({after_url})"
    else:
        detail = "URL unchanged" if not changed else f"URL unexpectedly changed to {after_url}"
    return ClauseResult(clause="url_should_change", passed=changed == should_change, detail=detail)


def _element_present(index: ElementIndex, entry: ElementExpectation, appearing: bool = True) -> bool:
    if entry.role and index.has_role(entry.role, fallbacks=appearing):
        return True
    if entry.selector and index.exists(entry.selector):
        return True
    return False


def _describe(entry: ElementExpectation) -> str:
    return entry.role or entry.selector or "unnamed element"
