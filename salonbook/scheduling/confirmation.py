"""Human-readable confirmation codes, unique within an organization."""

import logging
import secrets
from typing import Callable, Optional

from salonbook.config import settings

logger = logging.getLogger(__name__)


def generate_confirmation_code(length: Optional[int] = None, alphabet: Optional[str] = None) -> str:
    """Random code drawn from an alphabet without look-alike characters."""
    length = length or settings.confirmation.code_length
    alphabet = alphabet or settings.confirmation.alphabet
    return "".join(secrets.choice(alphabet) for _ in range(length))


def ensure_unique_code(
    exists: Callable[[str], bool],
    generator: Callable[[], str] = generate_confirmation_code,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Generate codes until one is not already taken.

    Raises:
        RuntimeError: If every attempt collided.
    """
    attempts = max_attempts or settings.confirmation.max_attempts
    for attempt in range(1, attempts + 1):
        code = generator()
        if not exists(code):
            return code
        logger.warning("Confirmation code collision on attempt %d", attempt)
    raise RuntimeError(
        f"Failed to generate unique confirmation code after {attempts} attempts"
    )
