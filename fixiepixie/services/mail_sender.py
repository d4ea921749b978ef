from abc import ABC, abstractmethod
from typing import Sequence

from fixiepixie.models.report_model import ComposedMessage, DeliveryOutcome


class MailSender(ABC):
    """
    A delivery path for composed report emails.

    Contract:
    - ``send`` returns a ``sent`` DeliveryOutcome on success.
    - Any failure raises a DeliveryError subclass; senders never return a
      failed outcome themselves.
    - The message object is only read, never modified.
    """

    name: str = "sender"

    @abstractmethod
    async def send(self, message: ComposedMessage, recipients: Sequence[str]) -> DeliveryOutcome:
        raise NotImplementedError
