"""Fake mailer — records sent emails for testing."""

from uuid import uuid4

from storefront.mailer.port import Mailer


class FakeMailer(Mailer):
    """Mailer that keeps messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, subject: str, body: str) -> dict:
        if not self.should_succeed:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
            }

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def last_to(self, address: str) -> dict | None:
        """Most recent message sent to ``address``."""
        for email in reversed(self.sent_emails):
            if email["to"] == address:
                return email
        return None

    def reset(self):
        """Clear sent emails (useful between tests)."""
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
