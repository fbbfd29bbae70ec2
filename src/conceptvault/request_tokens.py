"""Generation tokens for requests to external services.

Each request is issued a token for a logical slot (the pending analysis, the
quiz, the assessment of one node). Only the newest token of a slot may apply
its response; anything older has been superseded and is dropped.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from conceptvault.exceptions import StaleResponseError

logger = logging.getLogger(__name__)

ANALYSIS_SLOT = "analysis"
QUIZ_SLOT = "quiz"


def assessment_slot(node_id: str) -> str:
    return f"assessment:{node_id}"


@dataclass(frozen=True)
class RequestToken:
    """Identifies one in-flight request.

    Attributes:
        slot (str): Logical slot the request belongs to
        generation (int): Monotonically increasing number across all slots
        subject (Optional[str]): What the request is about, e.g. the assessed node id
    """
    slot: str
    generation: int
    subject: Optional[str] = None


class RequestTracker:
    """Issues tokens and tells current responses from stale ones."""

    def __init__(self):
        self._counter = 0
        self._latest: Dict[str, int] = {}

    def issue(self, slot: str, subject: Optional[str] = None) -> RequestToken:
        """Issue a token that supersedes every earlier token of the slot."""
        self._counter += 1
        self._latest[slot] = self._counter
        logger.debug(f"Issued request token {self._counter} for slot '{slot}'")
        return RequestToken(slot=slot, generation=self._counter, subject=subject)

    def is_current(self, token: RequestToken) -> bool:
        return self._latest.get(token.slot) == token.generation

    def check(self, token: RequestToken) -> None:
        """Raise if the token has been superseded.

        Raises:
            StaleResponseError: If a newer token exists for the slot
        """
        if not self.is_current(token):
            raise StaleResponseError(
                f"Response {token.generation} for '{token.slot}' superseded by "
                f"{self._latest.get(token.slot)}"
            )

    def retire(self, token: RequestToken) -> None:
        """Mark a slot as settled so its token cannot be applied twice."""
        if self.is_current(token):
            del self._latest[token.slot]
