import math
from datetime import datetime
from typing import Any, Dict, Optional

from config import UTC

Z85_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ.-:+=^!/*?&<>()[]{}@%$#"


def z85_encode(data: bytes) -> str:
    """ZeroMQ Z85 encoding (RFC 32). Input length must be a multiple of 4."""
    if len(data) % 4:
        raise ValueError("Z85 input length must be a multiple of 4")
    out = []
    for i in range(0, len(data), 4):
        value = int.from_bytes(data[i:i + 4], "big")
        chunk = []
        for _ in range(5):
            value, rem = divmod(value, 85)
            chunk.append(Z85_ALPHABET[rem])
        out.extend(reversed(chunk))
    return "".join(out)


def clamp_discount(discount: Any, low: int, high: int) -> int:
    value = float(discount)
    if not math.isfinite(value):
        raise ValueError("discount must be a finite number")
    return int(min(max(int(round(value)), low), high))


def generate_coupon(discount: Any, low: int = 10, high: int = 20, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Coupon code for the current month: Z85 of e.g. `JAN25-15`."""
    safe = clamp_discount(discount, low, high)
    now = now or datetime.now(UTC)
    plain = f"{now.strftime('%b').upper()}{now.strftime('%y')}-{safe:02d}"
    # Z85 needs whole 4-byte groups
    raw = plain.encode("ascii")
    raw += b" " * (-len(raw) % 4)
    return {"couponCode": z85_encode(raw), "discount": safe}
