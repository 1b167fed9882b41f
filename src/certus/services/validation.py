"""Parameter validation for drug queries.

Inputs are checked here before any network call is made. The ``validate_*``
functions return ``None`` or an ``ErrorDescriptor``; the ``require_*``
counterparts raise ``ValidationError`` and return the normalized value, and
are what the services call internally.
"""

from typing import Any

from certus.core.exceptions import ValidationError
from certus.core.results import ErrorDescriptor

DEFAULT_IDENTIFIER_TYPE = "openfda.generic_name"

IDENTIFIER_TYPE_ALIASES = {
    "generic_name": "openfda.generic_name",
    "brand_name": "openfda.brand_name",
    "proprietary_name": "openfda.brand_name",
}

MIN_MONTHS_BACK = 1
MAX_MONTHS_BACK = 60

MIN_LIMIT = 1
MAX_LIMIT = 50

MAX_BATCH_SIZE = 25


def _drug_name_error(name: Any, context: str | None) -> ValidationError:
    target = f" to search for {context}" if context else ""
    return ValidationError(
        message=f"Please provide a medication name{target}.",
        field="drug_name",
        value=name,
    )


def require_drug_name(name: Any, context: str | None = None) -> str:
    """Return the stripped drug name or raise ``ValidationError``.

    Args:
        name: Caller-provided drug name
        context: What the caller is searching for (e.g., "recalls"),
            included in the error message

    Raises:
        ValidationError: If the name is not a string, or is blank once
            double quotes are removed
    """
    if not isinstance(name, str) or not name.replace('"', "").strip():
        raise _drug_name_error(name, context)
    return name.strip()


def validate_drug_name(name: Any, context: str | None = None) -> ErrorDescriptor | None:
    """Check a drug name without raising.

    Returns:
        None if the name is usable, otherwise an ErrorDescriptor whose message
        contains "provide a medication name" and the calling context.
    """
    try:
        require_drug_name(name, context)
    except ValidationError as e:
        return e.to_descriptor(context=context)
    return None


def normalize_identifier_type(identifier_type: str | None = None) -> str:
    """Map shorthand identifier types to their namespaced openFDA field.

    ``generic_name`` -> ``openfda.generic_name`` and ``brand_name`` ->
    ``openfda.brand_name``. Unknown values pass through unchanged; a missing
    value defaults to ``openfda.generic_name``.
    """
    if identifier_type is None or not str(identifier_type).strip():
        return DEFAULT_IDENTIFIER_TYPE
    cleaned = str(identifier_type).strip()
    return IDENTIFIER_TYPE_ALIASES.get(cleaned, cleaned)


def _require_int_in_range(
    value: Any, *, field: str, minimum: int, maximum: int, message: str
) -> int:
    # bool is an int subclass but never a meaningful count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(message=message, field=field, value=value)
    if value < minimum or value > maximum:
        raise ValidationError(message=message, field=field, value=value)
    return value


def require_months_back(months_back: Any) -> int:
    """Return ``months_back`` if it lies within 1-60, else raise."""
    return _require_int_in_range(
        months_back,
        field="months_back",
        minimum=MIN_MONTHS_BACK,
        maximum=MAX_MONTHS_BACK,
        message=(
            f"Analysis period must be between {MIN_MONTHS_BACK} and "
            f"{MAX_MONTHS_BACK} months (got {months_back!r})."
        ),
    )


def validate_months_back(months_back: Any) -> ErrorDescriptor | None:
    try:
        require_months_back(months_back)
    except ValidationError as e:
        return e.to_descriptor()
    return None


def require_limit(limit: Any) -> int:
    """Return ``limit`` if it lies within 1-50, else raise."""
    return _require_int_in_range(
        limit,
        field="limit",
        minimum=MIN_LIMIT,
        maximum=MAX_LIMIT,
        message=(
            f"Result limit must be between {MIN_LIMIT} and {MAX_LIMIT} "
            f"(got {limit!r})."
        ),
    )


def validate_limit(limit: Any) -> ErrorDescriptor | None:
    try:
        require_limit(limit)
    except ValidationError as e:
        return e.to_descriptor()
    return None


def require_drug_list(drug_list: Any) -> list[Any]:
    """Check the batch list shape (entries are validated per drug later).

    Raises:
        ValidationError: If the list is not a list, is empty, or holds more
            than 25 entries
    """
    if not isinstance(drug_list, list) or not drug_list:
        raise ValidationError(
            message="Drug list must be a non-empty list of medication names.",
            field="drug_list",
        )
    if len(drug_list) > MAX_BATCH_SIZE:
        raise ValidationError(
            message=(
                f"Maximum {MAX_BATCH_SIZE} drugs allowed per batch "
                f"(got {len(drug_list)})."
            ),
            field="drug_list",
            value=len(drug_list),
        )
    return list(drug_list)
