"""Phone number normalization for claim contacts."""
import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_phone_es(raw: Optional[str]) -> Optional[str]:
    """Normalize a Spanish phone number to ``+34XXXXXXXXX``.

    Accepts ``0034`` and ``34`` prefixes and any punctuation. Returns None
    when the input does not reduce to nine national digits.
    """
    if not raw:
        return None

    digits = _NON_DIGITS.sub("", str(raw))

    if digits.startswith("00"):
        digits = digits[2:]

    if digits.startswith("34") and len(digits) == 11:
        digits = digits[2:]

    if len(digits) != 9:
        return None

    return f"+34{digits}"
