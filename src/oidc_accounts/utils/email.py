from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EmailAddress:
    local: str
    domain: str


def parse_email(email: str) -> EmailAddress:
    """Split an email address into its local part and domain.

    Both parts are lowercased. The split happens at the last ``@`` so quoted
    local parts containing ``@`` still yield the right domain.

    Raises:
        ValueError: If either part is empty.
    """
    local, sep, domain = email.strip().lower().rpartition("@")
    if not sep or not local or not domain:
        raise ValueError("Invalid email address")
    return EmailAddress(local=local, domain=domain)
