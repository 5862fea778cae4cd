"""Referral code format rules and resolution to a referrer"""

import re
import secrets

from referral_gateway.domain.models import CodeResolution, ResolutionStatus

# Ambiguous characters (0, O, 1, I, L) are excluded so codes survive being read aloud
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_LENGTH = 8

_REFERRAL_CODE_PATTERN = re.compile(rf"^[{REFERRAL_CODE_ALPHABET}]{{{REFERRAL_CODE_LENGTH}}}$")


def generate_referral_code() -> str:
    """Generate a random 8-character referral code"""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def normalize_referral_code(code: str | None) -> str:
    """Strip surrounding whitespace and the display hyphen, uppercase the rest"""
    if not code:
        return ""
    return code.strip().replace("-", "").upper()


def is_valid_referral_code_format(code: str | None) -> bool:
    """Check the 8-character format after normalization"""
    return bool(_REFERRAL_CODE_PATTERN.match(normalize_referral_code(code)))


def format_referral_code(code: str) -> str:
    """Insert a hyphen in the middle for display: ABCD-EFGH"""
    if not code or len(code) != REFERRAL_CODE_LENGTH:
        return code
    return f"{code[:4]}-{code[4:]}"


def resolve_referral_code(code: str | None, store) -> CodeResolution:
    """
    Resolve a referral code to its referrer.

    Malformed codes are rejected without a store lookup. An unknown code is a
    normal NOT_FOUND outcome, not an error. Store failures propagate.
    """
    if not is_valid_referral_code_format(code):
        return CodeResolution(status=ResolutionStatus.MALFORMED)

    referrer = store.find_referrer_by_code(normalize_referral_code(code))
    if referrer is None:
        return CodeResolution(status=ResolutionStatus.NOT_FOUND)

    return CodeResolution(status=ResolutionStatus.FOUND, referrer=referrer)
