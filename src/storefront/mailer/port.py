"""Mailer port — abstract interface for transactional email."""

from abc import ABC, abstractmethod


class Mailer(ABC):
    """Abstract interface for email dispatch adapters.

    Delivery is best-effort. A failed send never invalidates the token the
    message carries; the visitor can ask for it to be sent again.
    """

    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> dict:
        """Send an email message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
