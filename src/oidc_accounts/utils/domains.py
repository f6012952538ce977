from __future__ import annotations

import re
import unicodedata


def slugify_domain(domain: str) -> str:
    """Turn an email domain into a subdomain candidate.

    The top-level segment is dropped and the remaining labels are joined
    with ``-``: ``acme.io`` -> ``acme``, ``eng.acme.co.uk`` -> ``eng-acme-co``.
    """
    labels = [label for label in domain.strip().lower().split(".") if label]
    if len(labels) > 1:
        labels = labels[:-1]

    slug = "-".join(labels)
    slug = unicodedata.normalize("NFKD", slug).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9\s_-]", "", slug)
    slug = re.sub(r"[-\s_]+", "-", slug)
    return slug.strip("-")[:63]
