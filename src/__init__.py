"""
ChiroFlow MFA - Core Package

Time-based one-time-password enrollment and verification, backup-code
fallback and failed-attempt rate limiting for clinic staff accounts.
"""

__version__ = "1.0.0"
