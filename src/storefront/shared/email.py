"""EmailAddress value object for validated, normalised email addresses."""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String

from storefront.domain import storefront


def normalize_email(address: str) -> str:
    """Validate an address and return its canonical (trimmed, lower-cased) form."""
    if not isinstance(address, str):
        raise ValidationError({"email": ["Email address is required"]})
    return EmailAddress(address=address.strip().lower()).address


@storefront.value_object
class EmailAddress:
    """A validated email address conforming to basic format rules.

    Enforces structural validity: exactly one @, non-empty local and domain
    parts, a dotted domain, no consecutive dots, no whitespace or forbidden
    characters. Accounts key on the lower-cased form.
    """

    address: String(required=True, max_length=254)

    @invariant.post
    def verify_email_address(self):
        """Ensure that the email address follows a basic valid structure."""
        email = self.address

        def reject():
            raise ValidationError({"email": [f"Invalid email address: {email!r}"]})

        if any(ch.isspace() for ch in email):
            reject()

        if email.count("@") != 1:
            reject()

        local_part, domain_part = email.split("@", 1)

        if not local_part or local_part.startswith(".") or local_part.endswith("."):
            reject()

        if not domain_part or domain_part.startswith(".") or domain_part.endswith("."):
            reject()

        if "." not in domain_part:
            reject()

        for label in domain_part.split("."):
            if label.startswith("-") or label.endswith("-"):
                reject()

        if ".." in email:
            reject()

        for forbidden in (";", ",", "(", ")", '"', ":", "<", ">", "[", "]", "\\"):
            if forbidden in email:
                reject()
