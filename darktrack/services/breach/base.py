import logging
from abc import ABC, abstractmethod
from typing import List

from darktrack.core.errors import UpstreamDegraded
from darktrack.schemas.scan import BreachRecord

logger = logging.getLogger(__name__)


class BreachProvider(ABC):

    @abstractmethod
    def fetch_breaches(self, email: str) -> List[BreachRecord]:
        """
        Returns every breach the provider knows for this email,
        already classified. An unknown email is an empty list.

        Raises UpstreamDegraded when the provider cannot answer.
        """
        pass

    def lookup(self, email: str) -> List[BreachRecord]:
        """
        Never fails: a provider outage reads as "no breaches found".
        """
        try:
            return self.fetch_breaches(email)
        except UpstreamDegraded as exc:
            logger.warning("Breach lookup degraded: %s", exc.message)
            return []
