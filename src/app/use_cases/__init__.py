"""
Use Cases

Organized into domain folders:
- auth/: Authentication, sessions, two-factor, passwords, OAuth
"""

from .auth import AuthenticationOrchestrator

__all__ = [
    "AuthenticationOrchestrator",
]
