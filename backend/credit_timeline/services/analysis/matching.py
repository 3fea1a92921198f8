"""
Credit Timeline - Account Matching

Stable identity for "the same real-world account" across imports and across
source systems. Each credit reference agency reports its own tradeline rows,
so row ids never match; the account key does.

Key precedence:
    canonical:<canonical_id>                      extractor-assigned identity
    fingerprint:<ORGNAME>|<last4>|<YYYYMM>        derived from reported fields
    tradeline:<tradeline_id>                      matches only itself
"""
from __future__ import annotations
import re
from datetime import date
from typing import Optional

# Words agencies attach to the same lender inconsistently
# ("Barclaycard" / "BARCLAYCARD PLC" / "Barclays Bank UK")
LENDER_NOISE_WORDS = frozenset({
    "LTD", "LIMITED", "PLC", "LLC", "INC", "CORP", "CO", "UK",
    "BANK", "FINANCE", "CREDIT", "CARD", "SERVICE", "SERVICES",
})
ACCOUNT_TAIL_LENGTH = 4

_WORD = re.compile(r"[A-Z0-9]+")


def organisation_match_name(name: Optional[str]) -> str:
    """
    Upper-cased alphanumerics of an organisation name with the noise words
    dropped. Shared by account fingerprints and searcher identity.
    """
    words = _WORD.findall((name or "").upper())
    return "".join(w for w in words if w not in LENDER_NOISE_WORDS)


def account_fingerprint(
    furnisher_name: Optional[str],
    account_number_masked: Optional[str],
    opened_at: Optional[date],
) -> str:
    """
    "<ORGNAME>|<last 4 alphanumerics of the account>|<YYYYMM opened>".
    Masking characters are ignored, so "****1234" and "XX-1234" agree.
    Empty string when none of the three is known.
    """
    account_tail = "".join(_WORD.findall((account_number_masked or "").upper()))[-ACCOUNT_TAIL_LENGTH:]
    opened_month = opened_at.strftime("%Y%m") if opened_at else ""
    parts = (organisation_match_name(furnisher_name), account_tail, opened_month)
    return "|".join(parts) if any(parts) else ""


def account_key(
    tradeline_id: str,
    canonical_id: Optional[str] = None,
    furnisher_name: Optional[str] = None,
    account_number_masked: Optional[str] = None,
    opened_at: Optional[date] = None,
) -> str:
    """
    canonical_id wins when the extractor provides one. Otherwise the
    fingerprint; a tradeline with nothing to fingerprint only matches itself.
    """
    if canonical_id:
        return f"canonical:{canonical_id}"
    fingerprint = account_fingerprint(furnisher_name, account_number_masked, opened_at)
    if fingerprint:
        return f"fingerprint:{fingerprint}"
    return f"tradeline:{tradeline_id}"
