from flowbot.logging_config import get_logger
from flowbot.services.transport import normalize_number

logger = get_logger("blacklist")


class Blacklist:
    """Subscribers whose inbound messages are dropped without reply or history."""

    def __init__(self, numbers=()):
        self._numbers: set[str] = {normalize_number(n) for n in numbers if normalize_number(n)}

    def add(self, number: str) -> None:
        self._numbers.add(normalize_number(number))
        logger.info(f"Blacklisted {normalize_number(number)}")

    def remove(self, number: str) -> None:
        self._numbers.discard(normalize_number(number))
        logger.info(f"Removed {normalize_number(number)} from blacklist")

    def contains(self, number: str) -> bool:
        return normalize_number(number) in self._numbers

    def __contains__(self, number: str) -> bool:
        return self.contains(number)

    def __len__(self) -> int:
        return len(self._numbers)
