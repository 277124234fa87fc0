"""Password strength scoring shown on the register and reset forms."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

COMMON_PASSWORDS = {"password", "123456", "qwerty", "abc123", "password123"}

_SPECIAL = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


@dataclass
class PasswordValidation:
    is_valid: bool
    strength: str  # weak | fair | strong | very-strong
    score: int  # 0-100
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def validate_password(password: str) -> PasswordValidation:
    issues: list[str] = []
    suggestions: list[str] = []
    score = 0

    if len(password) < 6:
        issues.append("Password must be at least 6 characters long")
        suggestions.append("Add more characters to make it longer")
    elif len(password) < 8:
        score += 20
        suggestions.append("Consider making it at least 8 characters for better security")
    elif len(password) < 12:
        score += 30
    else:
        score += 40

    if not re.search(r"[A-Z]", password):
        issues.append("Add at least one uppercase letter")
        suggestions.append("Include uppercase letters (A-Z)")
    else:
        score += 15

    if not re.search(r"[a-z]", password):
        issues.append("Add at least one lowercase letter")
        suggestions.append("Include lowercase letters (a-z)")
    else:
        score += 15

    if not re.search(r"\d", password):
        issues.append("Add at least one number")
        suggestions.append("Include numbers (0-9)")
    else:
        score += 15

    # optional, only affects the score
    if not _SPECIAL.search(password):
        suggestions.append("Consider adding special characters (!@#$%^&*)")
    else:
        score += 15

    if password.lower() in COMMON_PASSWORDS:
        issues.append("This password is too common")
        suggestions.append('Avoid common passwords like "password" or "123456"')
        score = min(score, 20)

    if score < 40:
        strength = "weak"
    elif score < 60:
        strength = "fair"
    elif score < 80:
        strength = "strong"
    else:
        strength = "very-strong"

    return PasswordValidation(
        is_valid=not issues,
        strength=strength,
        score=score,
        issues=issues,
        suggestions=suggestions[:3],
    )
