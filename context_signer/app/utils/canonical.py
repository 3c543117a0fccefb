"""
Deterministic canonicalization of FDC3 context objects.

The canonical bytes are what KMS signs and what verification
reconstructs, so the same object must always produce the same bytes
regardless of mapping insertion order.

Encoding contract (byte-compatible with ``JSON.stringify`` over a
context whose keys were sorted with ``Array.prototype.sort()``):
- mapping keys sorted by UTF-16 code units at every level
- sequences keep their element order
- compact JSON separators, no whitespace
- UTF-8 output, non-ASCII characters emitted unescaped; lone
  surrogates are escaped as lowercase ``\\udxxx``
- floats formatted as ECMAScript ``Number::toString``: plain digits
  below 1e21 (``1.0`` -> ``1``, ``1e16`` -> ``10000000000000000``),
  decimal notation down to 1e-6, exponent form without zero padding
  otherwise (``1e-7``, ``1e+21``)
- integers emitted as their exact decimal digits
- NaN and Infinity are rejected

Canonicalization MUST be applied identically when signing and when
verifying. Circular references are not detected.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def _utf16_order(key: str) -> bytes:
    return key.encode("utf-16-be", "surrogatepass")


def _encode_string(text: str) -> str:
    # Surrogate pairs spelled as two code points are merged first so only
    # unpaired halves remain for escaping.
    text = _utf16_order(text).decode("utf-16-be", "surrogatepass")
    encoded = json.dumps(text, ensure_ascii=False)
    return _LONE_SURROGATE.sub(
        lambda match: f"\\u{ord(match.group()):04x}", encoded
    )


def _encode_float(value: float) -> str:
    if not math.isfinite(value):
        raise ValueError(f"non-finite number cannot be canonicalized: {value}")
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""

    # repr() yields the shortest round-trip digits; only the layout differs.
    mantissa, _, exponent = repr(abs(value)).partition("e")
    whole, _, fraction = mantissa.partition(".")
    all_digits = whole + fraction
    significant = all_digits.lstrip("0")

    # value == digits * 10 ** (point - len(digits))
    point = (
        len(whole)
        + int(exponent or 0)
        - (len(all_digits) - len(significant))
    )
    digits = significant.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        return sign + digits + "0" * (point - k)
    if 0 < point <= 21:
        return sign + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return sign + "0." + "0" * -point + digits

    e = point - 1
    exp_text = f"e{'+' if e >= 0 else '-'}{abs(e)}"
    if k == 1:
        return sign + digits + exp_text
    return sign + digits[0] + "." + digits[1:] + exp_text


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"

    if isinstance(value, str):
        return _encode_string(value)

    if isinstance(value, int):
        return str(int(value))

    if isinstance(value, float):
        return _encode_float(value)

    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(
                    f"mapping keys must be strings, got {type(key).__name__}"
                )
        members = (
            f"{_encode_string(key)}:{_encode(value[key])}"
            for key in sorted(value, key=_utf16_order)
        )
        return "{" + ",".join(members) + "}"

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return "[" + ",".join(_encode(item) for item in value) + "]"

    raise TypeError(
        f"unsupported type in structured object: {type(value).__name__}"
    )


def canonicalize(obj: Any) -> bytes:
    """
    Produce the canonical UTF-8 JSON encoding of ``obj``.

    Raises:
        TypeError: for values outside the JSON-compatible union.
        ValueError: for NaN or infinite floats.
    """
    return _encode(obj).encode("utf-8")
