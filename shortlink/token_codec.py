"""Positional base62 encoding of mapping ids into public tokens.

The alphabet is fixed: lowercase, then uppercase, then digits. Id 0 encodes
to ``"a"`` (never the empty string) and digits are written most-significant
first, so token length never shrinks as ids grow::

    0      -> "a"
    1      -> "b"
    61     -> "9"
    62     -> "ba"
"""

from shortlink.errors import InvalidInputError

__all__ = ["TOKEN_ALPHABET", "encode_token", "decode_token"]

TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
_BASE = len(TOKEN_ALPHABET)
_DIGIT_VALUES = {char: index for index, char in enumerate(TOKEN_ALPHABET)}


def encode_token(mapping_id: int) -> str:
    """Encode a non-negative id into its token."""
    if mapping_id < 0:
        raise ValueError(f"Mapping id must be non-negative, got {mapping_id}")
    if mapping_id == 0:
        return TOKEN_ALPHABET[0]

    digits = []
    while mapping_id > 0:
        mapping_id, remainder = divmod(mapping_id, _BASE)
        digits.append(TOKEN_ALPHABET[remainder])
    return "".join(reversed(digits))


def decode_token(token: str) -> int:
    """Return the id a token was encoded from.

    Raises:
        InvalidInputError: If the token is empty or uses characters outside the alphabet.
    """
    if not token:
        raise InvalidInputError("Token must not be empty")

    mapping_id = 0
    for char in token:
        try:
            mapping_id = mapping_id * _BASE + _DIGIT_VALUES[char]
        except KeyError:
            raise InvalidInputError(f"Invalid token character {char!r} in {token!r}") from None
    return mapping_id
