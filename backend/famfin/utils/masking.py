"""
Masking helpers for showing sensitive values in API responses.
"""


def mask_account_number(account_number: str) -> str:
    """
    Mask an account number, keeping the last 4 digits.

    Examples:
        "12345678" -> "****5678"
        "062-000 12345678" -> "**********5678"
    """
    if not account_number:
        return ""

    clean = "".join(ch for ch in account_number if ch not in " -")
    if len(clean) <= 4:
        return clean

    return "*" * (len(clean) - 4) + clean[-4:]


def mask_bsb(bsb: str) -> str:
    """
    Mask a BSB, keeping the bank prefix.

    Example:
        "062-000" -> "062-***"
    """
    if not bsb:
        return ""

    clean = bsb.replace("-", "").replace(" ", "")
    if len(clean) != 6:
        return "*" * len(clean)
    return f"{clean[:3]}-***"
