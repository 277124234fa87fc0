from __future__ import annotations

import logging
import math

from sqlmodel import Session, select

from .errors import ReviewError
from .models import MenuItem, Review

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def add_review(
    session: Session,
    user_id: int,
    user_name: str,
    menu_item_id: int,
    rating: int,
    comment: str = "",
) -> Review:
    """Store a review and refold the item's average rating and count.

    One review per user and item is expected but not enforced here; see
    ``has_reviewed``.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ReviewError("Rating must be a whole number from 1 to 5")
    item = session.get(MenuItem, menu_item_id)
    if not item:
        raise ReviewError("Menu item not found")

    review = Review(
        user_id=user_id,
        user_name=user_name,
        menu_item_id=menu_item_id,
        rating=rating,
        comment=comment.strip(),
    )
    session.add(review)
    session.flush()

    ratings = session.exec(select(Review.rating).where(Review.menu_item_id == menu_item_id)).all()
    item.average_rating = _round_half_up(sum(ratings) / len(ratings))
    item.review_count = len(ratings)
    session.add(item)
    session.commit()
    session.refresh(review)
    logger.info("Review %s/5 for %s", rating, item.name, extra={"user_id": user_id})
    return review


def has_reviewed(session: Session, user_id: int, menu_item_id: int) -> bool:
    return session.exec(
        select(Review.id).where(Review.user_id == user_id, Review.menu_item_id == menu_item_id)
    ).first() is not None


def reviewed_item_ids(session: Session, user_id: int) -> set[int]:
    return set(session.exec(select(Review.menu_item_id).where(Review.user_id == user_id)).all())


def reviews_for_item(session: Session, menu_item_id: int) -> list[Review]:
    return list(session.exec(
        select(Review).where(Review.menu_item_id == menu_item_id).order_by(Review.created_at.desc())
    ).all())
