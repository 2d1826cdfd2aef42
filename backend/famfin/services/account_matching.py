"""
Fuzzy matching of Xero bank accounts to local accounts.

Scores are 0-100. An exact account number match is the strongest signal,
then name similarity, then a weak type-plus-name signal.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from famfin.models.account import Account, AccountType

# Lowest confidence reported as a match at all
MIN_MATCH_CONFIDENCE = 50

# Confidence at which a mapping is linked without asking
AUTO_LINK_THRESHOLD = 70

# Xero type -> local type pairs that count as a type match
TYPE_MATCHES = {
    ("BANK", AccountType.BANK),
    ("CREDITCARD", AccountType.CREDIT),
    ("PAYPAL", AccountType.BANK),
}


@dataclass
class MatchResult:
    confidence: int
    reason: Optional[str] = None


@dataclass
class BestMatch:
    account: Optional[Account]
    confidence: int = 0
    reason: Optional[str] = None


def round_half_up(value: float) -> int:
    """Scores round halves up: 62.5 -> 63."""
    return math.floor(value + 0.5)


def normalize_account_number(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"[\s-]", "", value).lstrip("0").lower()


def normalize_string(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.lower().strip())


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ch_a in enumerate(a, start=1):
        current = [i]
        for j, ch_b in enumerate(b, start=1):
            if ch_a == ch_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current

    return previous[-1]


def string_similarity(a: Optional[str], b: Optional[str]) -> int:
    """Similarity of two names, 0-100."""
    norm_a = normalize_string(a)
    norm_b = normalize_string(b)

    if not norm_a or not norm_b:
        return 0
    if norm_a == norm_b:
        return 100

    distance = levenshtein_distance(norm_a, norm_b)
    return round_half_up((1 - distance / max(len(norm_a), len(norm_b))) * 100)


def contains_significant_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    One name contains the other, or at least half of the shorter name's
    major words (longer than 2 characters) appear in the other.
    """
    norm_a = normalize_string(a)
    norm_b = normalize_string(b)

    if not norm_a or not norm_b:
        return False
    if norm_a in norm_b or norm_b in norm_a:
        return True

    words_a = [w for w in norm_a.split(" ") if len(w) > 2]
    words_b = [w for w in norm_b.split(" ") if len(w) > 2]
    if not words_a or not words_b:
        return False

    matching = [w for w in words_a if any(w in other or other in w for other in words_b)]
    return bool(matching) and len(matching) >= min(len(words_a), len(words_b)) / 2


def xero_account_type(xero_account: dict[str, Any]) -> Optional[str]:
    return xero_account.get("BankAccountType") or xero_account.get("Type")


def calculate_account_match(xero_account: dict[str, Any], local_account: Account) -> MatchResult:
    """
    Score a Xero account (raw API dict) against a local account.

    Returns:
        MatchResult with confidence 0 and no reason when nothing matches
    """
    xero_number = normalize_account_number(xero_account.get("BankAccountNumber"))
    local_number = normalize_account_number(local_account.plain_account_number)

    if xero_number and local_number and xero_number == local_number:
        return MatchResult(95, "Account number matches exactly")

    xero_name = xero_account.get("Name")
    similarity = string_similarity(xero_name, local_account.name)

    if similarity >= 90:
        return MatchResult(85, "Account name matches exactly")

    if contains_significant_match(xero_name, local_account.name):
        return MatchResult(70, f'Name match: "{local_account.name}" similar to "{xero_name}"')

    if similarity >= 70:
        return MatchResult(round_half_up(similarity * 0.8), f"Name similarity: {similarity}%")

    type_matches = (xero_account_type(xero_account), local_account.account_type) in TYPE_MATCHES
    if type_matches and similarity >= 50:
        return MatchResult(
            round_half_up(similarity * 0.7),
            f"Account type matches with {similarity}% name similarity",
        )

    return MatchResult(0)


def find_best_match(xero_account: dict[str, Any], local_accounts: Iterable[Account]) -> BestMatch:
    """Highest scoring local account, if it reaches MIN_MATCH_CONFIDENCE."""
    best = BestMatch(account=None)

    for account in local_accounts:
        result = calculate_account_match(xero_account, account)
        if result.confidence > best.confidence:
            best = BestMatch(account=account, confidence=result.confidence, reason=result.reason)

    if best.confidence >= MIN_MATCH_CONFIDENCE:
        return best
    return BestMatch(account=None)


def map_xero_type(xero_type: Optional[str]) -> AccountType:
    if xero_type == "CREDITCARD":
        return AccountType.CREDIT
    return AccountType.BANK
