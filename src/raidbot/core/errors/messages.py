"""User-safe messages per error kind.

These strings are the only error text that reaches end users. Technical
detail stays in server logs keyed by correlation id.
"""

from typing import Dict

from raidbot.core.errors.classified import ErrorKind

USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Unable to connect to AI service. Please check your internet connection.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again.",
    ErrorKind.RATE_LIMIT: "AI service is busy. Please wait a moment and try again.",
    ErrorKind.API_KEY: "AI service is not properly configured. Please contact support.",
    ErrorKind.BAD_REQUEST: "Invalid request. Please check your message and try again.",
    ErrorKind.SERVER: "AI service is temporarily unavailable. Please try again in a moment.",
    ErrorKind.PARSE: "AI service returned an unexpected response. Please try again later.",
    ErrorKind.CONFIGURATION: "AI service is not configured. Please contact support.",
    ErrorKind.UNKNOWN: (
        "Something went wrong. Please try again or contact support if the issue persists."
    ),
}


def user_message(kind: ErrorKind) -> str:
    """Return the user-facing message for an error kind."""
    return USER_MESSAGES.get(kind, USER_MESSAGES[ErrorKind.UNKNOWN])
