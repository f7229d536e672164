"""Sequential invoice numbering."""

import re

DIGITS_RE = re.compile(r"\d+")
WIDTH = 4
FIRST_NUMBER = "1".zfill(WIDTH)


def next_number(last_invoice_number: str | None) -> str:
    """Return the number following ``last_invoice_number``.

    The last run of digits in the previous number is incremented and
    zero-padded to four digits, so ``INV-2024-0041`` yields ``0042``. Without
    a previous number, or when it carries no digits, numbering starts at
    ``0001``.
    """
    if not last_invoice_number:
        return FIRST_NUMBER
    runs = DIGITS_RE.findall(last_invoice_number)
    if not runs:
        return FIRST_NUMBER
    return str(int(runs[-1]) + 1).zfill(WIDTH)
