"""Email templates for account verification and password reset."""

from urllib.parse import urlencode


def build_link(base_url: str, path: str, token: str) -> str:
    return f"{base_url}{path}?{urlencode({'token': token})}"


class VerificationTemplate:
    path = "/verify-email"

    @staticmethod
    def render(context: dict) -> dict:
        link = context["link"]
        return {
            "subject": "Confirm your email address",
            "body": (
                "Hi,\n\n"
                "Please confirm your email address by opening the link below:\n\n"
                f"{link}\n\n"
                "The link expires in one hour. If you did not create an account, ignore this email.\n"
            ),
        }


class PasswordResetTemplate:
    path = "/reset-password"

    @staticmethod
    def render(context: dict) -> dict:
        link = context["link"]
        return {
            "subject": "Reset your password",
            "body": (
                "Hi,\n\n"
                "Someone asked to reset the password for this account. Open the link below to choose a new one:\n\n"
                f"{link}\n\n"
                "The link works once and expires in one hour. Resetting signs you out on every device.\n"
                "If this wasn't you, you can ignore this email.\n"
            ),
        }
