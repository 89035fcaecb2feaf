import re
from typing import Union

from ...exceptions import InvalidPhoneFormat

_SEPARATORS = re.compile(r'[\s\-.()/]')
_CANONICAL = re.compile(r'^\+[0-9]{2,15}$')


class PhoneNumber(str):
    """Canonical phone number: ``+`` followed by 2-15 digits.

    Instances are only produced by :func:`normalize`, so holding one means the
    value already passed validation.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"PhoneNumber({str.__repr__(self)})"


def normalize(raw: Union[str, PhoneNumber]) -> PhoneNumber:
    """Canonicalize user input into a PhoneNumber.

    Whitespace and common separators are stripped, a leading international
    ``00`` becomes ``+``, and a missing ``+`` is added when the rest is
    digits. Anything else fails with InvalidPhoneFormat.
    """
    if isinstance(raw, PhoneNumber):
        return raw
    if not isinstance(raw, str):
        raise InvalidPhoneFormat("Phone number must be a string")

    cleaned = _SEPARATORS.sub('', raw)
    if cleaned.startswith('00'):
        cleaned = '+' + cleaned[2:]
    elif cleaned and not cleaned.startswith('+'):
        cleaned = '+' + cleaned

    if not _CANONICAL.match(cleaned):
        raise InvalidPhoneFormat(f"Not a valid international phone number: {raw!r}")
    return PhoneNumber(cleaned)
