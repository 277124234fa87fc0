from __future__ import annotations

from datetime import date

from sqlmodel import Session

from .models import TokenCounter
from .utils import date_key


def next_token(session: Session, day: date) -> str:
    """Return the next pickup token for ``day``, e.g. ``20261019-007``.

    The sequence starts at 001 for each calendar day. The counter row is
    added to the session but not committed, so the token and the order that
    carries it land in the same commit. Concurrent writers can read the same
    count and hand out the same token.
    """
    key = date_key(day)
    counter = session.get(TokenCounter, key)
    if not counter:
        counter = TokenCounter(date_key=key, count=0)
    counter.count += 1
    session.add(counter)
    session.flush()
    return f"{key}-{counter.count:03d}"
