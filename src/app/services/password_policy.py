"""
Password Policy Engine

Validates, scores and generates passwords. Validation reports every
violation at once so a client can render a full checklist.
"""

import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from src.app.services.passwords import verify_password

SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

COMMON_PASSWORDS = frozenset(
    [
        "password", "123456", "123456789", "qwerty", "abc123", "password123",
        "admin", "letmein", "welcome", "monkey", "1234567890", "password1",
        "qwerty123", "dragon", "master", "hello", "freedom", "whatever",
        "qazwsx", "trustno1", "jordan23", "harley", "ranger", "jordan",
        "hunter", "buster", "soccer", "hockey", "killer", "george",
        "andrew", "charlie", "superman", "dallas", "jessica", "pepper",
        "1234", "696969", "jennifer", "zxcvbnm", "asdfgh", "iloveyou",
        "sunshine", "princess", "football", "baseball", "shadow", "michael",
        "12345678", "111111", "000000", "passw0rd", "p@ssw0rd", "p@ssword",
        "welcome1", "admin123", "qwertyuiop", "1q2w3e4r", "changeme",
    ]
)

COMMON_PATTERNS = [
    re.compile(r"123|abc|qwerty|asdf|password|admin"),
    re.compile(r"(.)\1{2,}"),
    re.compile(r"012|234|345|456|567|678|789|890"),
    re.compile(
        r"bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz"
    ),
]


class PasswordViolation:
    TOO_SHORT = "TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    MISSING_UPPERCASE = "MISSING_UPPERCASE"
    MISSING_LOWERCASE = "MISSING_LOWERCASE"
    MISSING_DIGIT = "MISSING_DIGIT"
    MISSING_SYMBOL = "MISSING_SYMBOL"
    TOO_COMMON = "TOO_COMMON"
    CONTAINS_PERSONAL_INFO = "CONTAINS_PERSONAL_INFO"
    REUSED_RECENTLY = "REUSED_RECENTLY"


class StrengthLevel:
    VERY_WEAK = "very_weak"
    WEAK = "weak"
    FAIR = "fair"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    max_length: int = 128
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_symbol: bool = True
    reject_common: bool = True
    reject_personal_info: bool = True
    # None disables expiry
    max_age_days: Optional[int] = 90


@dataclass(frozen=True)
class UserInfo:
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass
class PasswordValidation:
    valid: bool
    violations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PasswordStrength:
    level: str
    score: int
    feedback: List[str]


class PasswordPolicyEngine:
    """
    Password rules.

    Business Rules:
    - All violations are collected, never fail-fast
    - Reuse is checked against prior bcrypt hashes (password history)
    - Generated passwords come from the OS CSPRNG and always validate
    - Scoring is advisory and independent of pass/fail
    - A password older than max_age_days is expired; expiry forces a change
      at the next sign-in, it never blocks one
    """

    def __init__(self, policy: Optional[PasswordPolicy] = None):
        self.policy = policy or PasswordPolicy()

    def validate(
        self,
        password: str,
        history_hashes: Iterable[str] = (),
        user_info: Optional[UserInfo] = None,
    ) -> PasswordValidation:
        violations = self._rule_violations(password)

        if self.policy.reject_personal_info and self._contains_personal_info(
            password, user_info
        ):
            violations.append(PasswordViolation.CONTAINS_PERSONAL_INFO)

        if any(verify_password(password, h) for h in history_hashes):
            violations.append(PasswordViolation.REUSED_RECENTLY)

        return PasswordValidation(valid=not violations, violations=violations)

    def is_password_expired(self, changed_at: Optional[datetime], now: datetime) -> bool:
        """A password with no recorded change date counts as expired"""
        if self.policy.max_age_days is None:
            return False
        if changed_at is None:
            return True
        return now - changed_at > timedelta(days=self.policy.max_age_days)

    def generate(self, length: int = 16) -> str:
        """
        Random password with at least one character of every class.

        Raises:
            ValueError: length below the policy minimum or above the maximum
        """
        if length < self.policy.min_length or length > self.policy.max_length:
            raise ValueError(
                f"Length must be between {self.policy.min_length} and {self.policy.max_length}"
            )

        rng = secrets.SystemRandom()
        classes = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SYMBOLS]
        alphabet = "".join(classes)
        while True:
            chars = [rng.choice(c) for c in classes]
            chars += [rng.choice(alphabet) for _ in range(length - len(classes))]
            rng.shuffle(chars)
            password = "".join(chars)
            # Vanishingly rare, but a generated value must never fail validation
            if not self._rule_violations(password):
                return password

    def score(self, password: str) -> PasswordStrength:
        policy = self.policy
        lowered = password.lower()
        points = 0
        feedback = []

        if len(password) >= policy.min_length:
            points += 20
        else:
            feedback.append(f"Use at least {policy.min_length} characters")
        if len(password) >= 12:
            points += 5
        if len(password) >= 16:
            points += 5

        checks = [
            (re.search(r"[A-Z]", password), "Add uppercase letters"),
            (re.search(r"[a-z]", password), "Add lowercase letters"),
            (re.search(r"\d", password), "Add numbers"),
            (any(c in SYMBOLS for c in password), "Add symbols"),
        ]
        for present, hint in checks:
            if present:
                points += 15
            else:
                feedback.append(hint)

        if lowered in COMMON_PASSWORDS:
            feedback.append("This is a commonly used password")
        else:
            points += 10

        if any(p.search(lowered) for p in COMMON_PATTERNS):
            points -= 10
            feedback.append("Avoid sequences and repeated characters")

        points = max(0, min(100, points))
        return PasswordStrength(level=_level_for(points), score=points, feedback=feedback)

    def _rule_violations(self, password: str) -> List[str]:
        policy = self.policy
        violations = []
        if len(password) < policy.min_length:
            violations.append(PasswordViolation.TOO_SHORT)
        if len(password) > policy.max_length:
            violations.append(PasswordViolation.TOO_LONG)
        if policy.require_uppercase and not re.search(r"[A-Z]", password):
            violations.append(PasswordViolation.MISSING_UPPERCASE)
        if policy.require_lowercase and not re.search(r"[a-z]", password):
            violations.append(PasswordViolation.MISSING_LOWERCASE)
        if policy.require_digit and not re.search(r"\d", password):
            violations.append(PasswordViolation.MISSING_DIGIT)
        if policy.require_symbol and not any(c in SYMBOLS for c in password):
            violations.append(PasswordViolation.MISSING_SYMBOL)
        if policy.reject_common and password.lower() in COMMON_PASSWORDS:
            violations.append(PasswordViolation.TOO_COMMON)
        return violations

    @staticmethod
    def _contains_personal_info(password: str, user_info: Optional[UserInfo]) -> bool:
        if user_info is None:
            return False
        fragments = []
        if user_info.email:
            fragments.append(user_info.email.split("@", 1)[0])
        if user_info.name:
            fragments.extend(user_info.name.split())
        lowered = password.lower()
        return any(len(f) >= 3 and f.lower() in lowered for f in fragments)


def _level_for(score: int) -> str:
    if score < 20:
        return StrengthLevel.VERY_WEAK
    if score < 40:
        return StrengthLevel.WEAK
    if score < 60:
        return StrengthLevel.FAIR
    if score < 80:
        return StrengthLevel.STRONG
    return StrengthLevel.VERY_STRONG
