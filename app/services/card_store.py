from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Set

from sqlmodel import Session as DBSession, select

from app.db.schemas import Card, CardProgress, Deck, StudySession


class CardStore:
    """Read-only access to decks, cards and per-learner card progress."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    def get_deck(self, deck_id: int) -> Optional[Deck]:
        return self.session.get(Deck, deck_id)

    def list_deck_cards(self, deck_id: int) -> List[Card]:
        statement = (
            select(Card)
            .where(Card.deck_id == deck_id)
            .where(Card.deleted_at.is_(None))
            .order_by(Card.position, Card.created_at, Card.id)
        )
        return list(self.session.exec(statement).all())

    def get_cards_in_order(self, card_ids: Sequence[int]) -> List[Card]:
        """Return cards in the order of ``card_ids``, soft-deleted ones included."""
        if not card_ids:
            return []
        rows = self.session.exec(select(Card).where(Card.id.in_(list(card_ids)))).all()
        by_id = {card.id: card for card in rows}
        return [by_id[card_id] for card_id in card_ids if card_id in by_id]

    def get_progress(self, learner_id: int, card_ids: Sequence[int]) -> List[CardProgress]:
        if not card_ids:
            return []
        statement = (
            select(CardProgress)
            .where(CardProgress.learner_id == learner_id)
            .where(CardProgress.card_id.in_(list(card_ids)))
        )
        return list(self.session.exec(statement).all())

    def get_progress_map(self, learner_id: int, card_ids: Sequence[int]) -> Dict[int, CardProgress]:
        return {row.card_id: row for row in self.get_progress(learner_id, card_ids)}

    def active_session_card_ids(self, learner_id: int) -> Set[int]:
        statement = (
            select(StudySession)
            .where(StudySession.learner_id == learner_id)
            .where(StudySession.status == "active")
        )
        card_ids: Set[int] = set()
        for study_session in self.session.exec(statement).all():
            card_ids.update(int(card_id) for card_id in study_session.selected_card_ids or [])
        return card_ids
