"""
Input normalisation for cache identity.

A normalised key is the raw text case-folded, trimmed, and with every
run of internal whitespace collapsed to a single space.
"""

from taskline.exceptions import InvalidInputError


def normalize(raw_text: object) -> str:
    """Canonicalise raw text into a cache key.

    Args:
        raw_text: The user's free-form input.

    Returns:
        The normalised key.

    Raises:
        InvalidInputError: If the input is not a string or is blank.
    """
    if not isinstance(raw_text, str):
        raise InvalidInputError(
            f"Expected text input, got {type(raw_text).__name__}"
        )
    key = " ".join(raw_text.casefold().split())
    if not key:
        raise InvalidInputError("Input must not be empty")
    return key
