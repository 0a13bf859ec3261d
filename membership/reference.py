import secrets
from typing import Callable, Iterator, Optional

from . import config
from .errors import ReferenceExhausted


class ReferenceAllocator:
    """Produces candidate member reference codes: ``DW`` + 5 digits.

    Candidates are not checked here; the unique constraint on
    ``entries.ref`` is the authority. Callers insert, and on a uniqueness
    violation take the next candidate from ``attempts()``.
    """

    def __init__(
        self,
        rng: Optional[Callable[[], int]] = None,
        max_attempts: int = config.REFERENCE_MAX_ATTEMPTS,
        prefix: str = config.REFERENCE_PREFIX,
    ):
        self._rng = rng or self._secure_digits
        self.max_attempts = max_attempts
        self.prefix = prefix

    @staticmethod
    def _secure_digits() -> int:
        return 10000 + secrets.randbelow(90000)

    def allocate(self) -> str:
        return f"{self.prefix}{self._rng():05d}"

    def attempts(self) -> Iterator[tuple[int, str]]:
        """Yield ``(attempt, code)`` pairs, then raise once the budget is spent."""
        for attempt in range(1, self.max_attempts + 1):
            yield attempt, self.allocate()
        raise ReferenceExhausted(
            f"Failed to generate unique reference after {self.max_attempts} attempts"
        )
