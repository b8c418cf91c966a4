"""Authorization gate: who may issue bot commands."""

from __future__ import annotations

from collections.abc import Iterable

TRUSTED_ASSOCIATIONS: frozenset[str] = frozenset({"OWNER", "MEMBER"})


def is_authorized(
    author_association: str | None,
    trusted: Iterable[str] = TRUSTED_ASSOCIATIONS,
) -> bool:
    """Return True if the comment author's association is trusted.

    ``author_association`` is GitHub's classification of the comment author
    relative to the repository (OWNER, MEMBER, COLLABORATOR, CONTRIBUTOR,
    NONE, ...). Matching is exact; GitHub always reports it upper-case.
    """
    if not author_association:
        return False
    return author_association in set(trusted)
