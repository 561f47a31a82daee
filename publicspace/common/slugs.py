"""URL-safe identifier checks and canonicalisation.

Two predicates are exposed on purpose: stored documents may carry legacy
slugs that only satisfy the loose form, while every freshly generated
identifier satisfies the strict kebab form.
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping

LOOSE_SLUG_RE = re.compile(r"^[a-z0-9\-]+$")
STRICT_SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_REPEATED_HYPHEN_RE = re.compile(r"-{2,}")


@dataclass(frozen=True)
class SlugIssue:
    document_id: str
    current: str | None
    suggested: str


def is_loose_slug(value: str | None) -> bool:
    return bool(value) and bool(LOOSE_SLUG_RE.match(value))


def is_strict_slug(value: str | None) -> bool:
    return bool(value) and bool(STRICT_SLUG_RE.match(value))


def slugify(value: str) -> str:
    lowered = value.lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    hyphenated = _NON_ALNUM_RE.sub("-", stripped)
    trimmed = hyphenated.strip("-")
    return _REPEATED_HYPHEN_RE.sub("-", trimmed)


def suggest_slug_fixes(documents: Iterable[tuple[str, Mapping]]) -> list[SlugIssue]:
    """Report documents whose ``space_id`` fails the loose check.

    Nothing is corrected here; applying a suggestion is a separate,
    human-confirmed update keyed on the document id.
    """
    issues: list[SlugIssue] = []
    for document_id, fields in documents:
        current = fields.get("space_id")
        if isinstance(current, str) and is_loose_slug(current):
            continue
        issues.append(
            SlugIssue(
                document_id=document_id,
                current=current if isinstance(current, str) else None,
                suggested=slugify(current) if isinstance(current, str) else "",
            )
        )
    return issues


def find_collisions(ids: Iterable[str]) -> dict[str, int]:
    counts = Counter(ids)
    return {slug: count for slug, count in sorted(counts.items()) if count > 1}
