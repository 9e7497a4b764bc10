"""
Reference number generation for OVR, citation, payment and receipt numbers.

Format: PREFIX + YYYY + MM + random digits. Generation is stateless and never
consults storage; uniqueness is enforced by the unique columns and the
retry loop in the services that persist the numbers.
"""
from datetime import datetime
from typing import Optional
import random
import re
import string

from app.models.enums import ReferenceKind
from app.utils.clock import utcnow

RANDOM_DIGITS = {
    ReferenceKind.OVR: 4,
    ReferenceKind.CITATION: 4,
    ReferenceKind.PAYMENT: 5,
    ReferenceKind.RECEIPT: 4,
}

PATTERNS = {
    kind: re.compile(rf"^{kind.value}(\d{{4}})(\d{{2}})\d{{{digits}}}$")
    for kind, digits in RANDOM_DIGITS.items()
}


def generate(kind: ReferenceKind, now: Optional[datetime] = None) -> str:
    """Generate a reference number of the given kind for the month of ``now``."""
    now = now or utcnow()
    random_part = "".join(random.choices(string.digits, k=RANDOM_DIGITS[kind]))
    return f"{kind.value}{now.year:04d}{now.month:02d}{random_part}"


def generate_ovr_number(now: Optional[datetime] = None) -> str:
    return generate(ReferenceKind.OVR, now)


def generate_citation_number(now: Optional[datetime] = None) -> str:
    return generate(ReferenceKind.CITATION, now)


def generate_payment_id(now: Optional[datetime] = None) -> str:
    return generate(ReferenceKind.PAYMENT, now)


def generate_receipt_number(now: Optional[datetime] = None) -> str:
    return generate(ReferenceKind.RECEIPT, now)


def matches(kind: ReferenceKind, value: str) -> bool:
    """True if ``value`` has the exact shape of a ``kind`` reference number."""
    m = PATTERNS[kind].match(value or "")
    return bool(m) and 1 <= int(m.group(2)) <= 12
