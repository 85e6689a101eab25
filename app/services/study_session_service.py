"""
Study session lifecycle: create, resume, autosave, complete, abandon.

Autosave and completion both feed the progression ledger. To credit XP,
time and answers exactly once, every write compares the incoming absolute
values with the snapshot stored on the session row, hands only the
difference to the ledger, and then stores the new absolute values as the
next baseline. Replaying an autosave therefore yields a zero delta.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session as DBSession, select

from app.config.settings import Settings, get_settings
from app.core.exceptions import (
    AlreadyCompleted,
    ForbiddenError,
    NoCardsInDeck,
    NotFoundError,
    ServerError,
    SessionNotActive,
    StudyEngineError,
    UnauthorizedError,
    ValidationError,
)
from app.db.schemas import Card, CardProgress, Learner, StudySession
from app.models.card import CardRead
from app.models.progress import CardProgressRead
from app.models.study_session import (
    SELECTION_METHODS,
    AutosaveResult,
    AvailableCountRead,
    CardOutcome,
    CompletionResult,
    GuestStudySessionAutosave,
    GuestStudySessionCreate,
    StudySessionAutosave,
    StudySessionComplete,
    StudySessionCreate,
    StudySessionCreateResult,
    StudySessionDetail,
    StudySessionRead,
)
from app.services.achievement_service import AchievementEvaluator, RuleAchievementEvaluator, SessionContext
from app.services.card_selection import interleave_cards_by_type, select_cards_for_session
from app.services.card_store import CardStore
from app.services.progression_service import ProgressionLedger
from app.services.scheduler import CardMemory, calculate_sm2_update, quality_for_answer
from app.utils.timezone import local_hour, local_today

logger = logging.getLogger(__name__)

GUEST_TOKEN_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
ANSWERED = ("correct", "incorrect")


@dataclass(frozen=True)
class AutosaveDelta:
    new_answers: int = 0
    new_correct: int = 0
    xp: int = 0
    time_seconds: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.new_answers or self.new_correct or self.xp or self.time_seconds)


@dataclass
class OutcomeTally:
    learned: int = 0
    mastered: int = 0
    unmastered: int = 0


def compute_autosave_delta(
    stored_answers: Mapping[str, str],
    stored_xp: int,
    stored_duration: int,
    *,
    answers: Optional[Mapping[str, str]] = None,
    session_xp: Optional[int] = None,
    duration_seconds: Optional[int] = None,
) -> AutosaveDelta:
    """Difference between an autosave payload and the stored snapshot.

    A card adds to the answer count the first time it is answered; skips are
    not answers. Correct answers are counted net: flipping a stored answer to
    ``correct`` adds one, flipping it away from ``correct`` takes one back, so
    ``new_correct`` may be negative. Time only moves forward. A drop in
    session XP is XP spent during the session and comes back as a negative
    delta.
    """
    new_answers = 0
    new_correct = 0
    if answers is not None:
        for card_id, outcome in answers.items():
            previous = stored_answers.get(card_id)
            if outcome in ANSWERED and previous not in ANSWERED:
                new_answers += 1
            if outcome == "correct" and previous != "correct":
                new_correct += 1
            elif previous == "correct" and outcome != "correct":
                new_correct -= 1
    xp = session_xp - (stored_xp or 0) if session_xp is not None else 0
    time_seconds = max(0, duration_seconds - (stored_duration or 0)) if duration_seconds is not None else 0
    return AutosaveDelta(new_answers=new_answers, new_correct=new_correct, xp=xp, time_seconds=time_seconds)


def reconcile_card_order(persisted_ids: Sequence[int], client_ids: Optional[Sequence[int]]) -> bool:
    """Return True when a client-held order disagrees with the persisted one."""
    return client_ids is not None and list(client_ids) != list(persisted_ids)


def _count_outcomes(answers: Mapping[str, str], outcome: str) -> int:
    return sum(1 for value in answers.values() if value == outcome)


class StudySessionService:
    def __init__(
        self,
        session: DBSession,
        *,
        achievement_evaluator: Optional[AchievementEvaluator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.cards = CardStore(session)
        self.ledger = ProgressionLedger(session, self.settings)
        self.achievements = achievement_evaluator or RuleAchievementEvaluator(session, self.ledger)

    # Creation
    def create_session(self, learner_id: int, data: StudySessionCreate) -> StudySessionCreateResult:
        method = self._validate_method(data.selection_method)
        self._get_learner(learner_id)
        deck = self.cards.get_deck(data.deck_id)
        if not deck:
            raise NotFoundError("Deck not found")
        deck_cards = self.cards.list_deck_cards(data.deck_id)
        if not deck_cards:
            raise NoCardsInDeck()
        progress = self.cards.get_progress(learner_id, [card.id for card in deck_cards])
        exclude_ids = self.cards.active_session_card_ids(learner_id) if data.exclude_active_session_cards else None
        selection = select_cards_for_session(
            deck_cards,
            progress,
            method,
            card_count=data.card_count,
            selected_card_ids=data.selected_card_ids,
            exclude_mastered=data.exclude_mastered_cards,
            exclude_card_ids=exclude_ids,
        )
        ordered = interleave_cards_by_type(selection.selected_cards)
        entity = StudySession(
            learner_id=learner_id,
            deck_id=data.deck_id,
            title=data.title or f"{method.capitalize()} - {len(ordered)} cards",
            selection_method=method,
            total_cards=len(ordered),
            selected_card_ids=[card.id for card in ordered],
        )
        self.session.add(entity)
        self._commit("create study session")
        self.session.refresh(entity)
        logger.info(
            "Created study session %s for learner %s (deck=%s, method=%s, cards=%d)",
            entity.id,
            learner_id,
            data.deck_id,
            method,
            len(ordered),
        )
        progress_map = {row.card_id: row for row in progress}
        return StudySessionCreateResult(
            session=self._to_detail(entity, ordered, progress_map),
            available_cards=selection.available_count,
            mastered_cards=selection.mastered_count,
        )

    def create_guest_session(self, data: GuestStudySessionCreate) -> StudySessionCreateResult:
        token = self._validate_guest_token(data.guest_token)
        method = self._validate_method(data.selection_method)
        deck = self.cards.get_deck(data.deck_id)
        if not deck:
            raise NotFoundError("Deck not found")
        deck_cards = self.cards.list_deck_cards(data.deck_id)
        if not deck_cards:
            raise NoCardsInDeck()
        selection = select_cards_for_session(
            deck_cards,
            [],
            method,
            card_count=data.card_count,
            selected_card_ids=data.selected_card_ids,
            exclude_mastered=False,
        )
        ordered = interleave_cards_by_type(selection.selected_cards)
        entity = StudySession(
            guest_token=token,
            is_guest=True,
            deck_id=data.deck_id,
            title=data.title or f"Guest - {method.capitalize()} - {len(ordered)} cards",
            selection_method=method,
            total_cards=len(ordered),
            selected_card_ids=[card.id for card in ordered],
        )
        self.session.add(entity)
        self._commit("create guest study session")
        self.session.refresh(entity)
        logger.info("Created guest study session %s (deck=%s, cards=%d)", entity.id, data.deck_id, len(ordered))
        return StudySessionCreateResult(
            session=self._to_detail(entity, ordered, {}, guest_token=token),
            available_cards=selection.available_count,
            mastered_cards=0,
        )

    def count_available_cards(
        self,
        learner_id: int,
        deck_id: int,
        *,
        exclude_mastered: bool = False,
        exclude_active_session_cards: bool = False,
    ) -> AvailableCountRead:
        if not self.cards.get_deck(deck_id):
            raise NotFoundError("Deck not found")
        deck_cards = self.cards.list_deck_cards(deck_id)
        progress_map = self.cards.get_progress_map(learner_id, [card.id for card in deck_cards])
        active_ids = self.cards.active_session_card_ids(learner_id) if exclude_active_session_cards else set()
        mastered_ids = {
            card.id
            for card in deck_cards
            if card.id in progress_map and progress_map[card.id].status == "mastered"
        }
        deck_active_ids = {card.id for card in deck_cards if card.id in active_ids}
        available = [
            card
            for card in deck_cards
            if not (exclude_mastered and card.id in mastered_ids) and card.id not in deck_active_ids
        ]
        return AvailableCountRead(
            total_cards=len(deck_cards),
            mastered_count=len(mastered_ids) if exclude_mastered else 0,
            active_session_card_count=len(deck_active_ids),
            available_count=len(available),
        )

    # Reads
    def list_sessions(
        self,
        learner_id: int,
        *,
        status_filter: str = "active",
        deck_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[StudySessionRead]:
        statement = select(StudySession).where(StudySession.learner_id == learner_id)
        if status_filter != "all":
            statement = statement.where(StudySession.status == status_filter)
        if deck_id is not None:
            statement = statement.where(StudySession.deck_id == deck_id)
        statement = (
            statement.order_by(StudySession.last_activity_at.desc(), StudySession.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [StudySessionRead.model_validate(item) for item in self.session.exec(statement).all()]

    def get_session(
        self,
        learner_id: int,
        session_id: int,
        *,
        client_card_ids: Optional[Sequence[int]] = None,
    ) -> StudySessionDetail:
        entity = self.session.get(StudySession, session_id)
        if not entity or entity.learner_id != learner_id:
            raise NotFoundError("Study session not found")
        cards = self.cards.get_cards_in_order(entity.selected_card_ids)
        progress_map = self.cards.get_progress_map(learner_id, entity.selected_card_ids)
        return self._to_detail(entity, cards, progress_map, client_card_ids=client_card_ids)

    def get_guest_session(self, session_id: int, guest_token: Optional[str]) -> StudySessionDetail:
        if not guest_token:
            raise ValidationError("guest_token is required")
        entity = self._get_guest_entity(session_id, guest_token)
        cards = self.cards.get_cards_in_order(entity.selected_card_ids)
        return self._to_detail(entity, cards, {}, guest_token=guest_token)

    # Autosave
    def autosave(self, learner_id: int, session_id: int, data: StudySessionAutosave) -> AutosaveResult:
        entity = self._lock_session(session_id)
        if not entity or entity.is_guest and entity.learner_id is None:
            raise NotFoundError("Study session not found")
        if entity.learner_id != learner_id:
            raise ForbiddenError("You are not allowed to modify this session")
        if entity.status != "active":
            raise SessionNotActive()
        learner = self._lock_learner(learner_id)

        delta = compute_autosave_delta(
            entity.answers or {},
            entity.session_xp,
            entity.duration_seconds,
            answers=data.answers,
            session_xp=data.session_xp,
            duration_seconds=data.duration_seconds,
        )
        self._apply_snapshot(entity, data)
        self.ledger.record_answers(learner, delta.new_answers, delta.new_correct)
        self.ledger.apply_xp(learner, delta.xp)
        if delta.time_seconds or delta.new_correct or delta.xp:
            self.ledger.record_daily_progress(
                learner_id,
                local_today(data.timezone_offset_minutes),
                cards_studied=delta.new_correct,
                time_spent_seconds=delta.time_seconds,
                xp_earned=delta.xp,
            )
        self._commit("autosave study session")
        if not delta.is_empty:
            logger.debug("Autosave %s applied delta %s", session_id, delta)

        new_achievements: List[str] = []
        if data.answers:
            answers = data.answers
            correct = _count_outcomes(answers, "correct")
            total_cards = entity.total_cards or 0
            context = SessionContext(
                correct_count=correct,
                duration_seconds=data.duration_seconds or 0,
                total_cards=total_cards,
                completed_at_hour=local_hour(data.timezone_offset_minutes),
                score=round(correct / total_cards * 100) if total_cards else 0,
                session_xp=data.session_xp or 0,
            )
            new_achievements = self._evaluate_best_effort(learner_id, context)

        self.session.refresh(entity)
        self.session.refresh(learner)
        return AutosaveResult(
            session=StudySessionRead.model_validate(entity),
            learner=self.ledger.snapshot(learner),
            new_achievements=new_achievements,
        )

    def autosave_guest(self, session_id: int, data: GuestStudySessionAutosave) -> StudySessionRead:
        if not data.guest_token:
            raise ValidationError("guest_token is required")
        entity = self._get_guest_entity(session_id, data.guest_token, lock=True)
        if entity.status != "active":
            raise SessionNotActive()
        self._apply_snapshot(entity, data)
        self._commit("autosave guest study session")
        self.session.refresh(entity)
        return StudySessionRead.model_validate(entity)

    # Terminal transitions
    def complete_session(self, learner_id: int, session_id: int, data: StudySessionComplete) -> CompletionResult:
        entity = self._lock_session(session_id)
        if not entity or entity.learner_id != learner_id:
            raise NotFoundError("Study session not found")
        if entity.status == "completed":
            raise AlreadyCompleted()
        if entity.status != "active":
            raise SessionNotActive()
        self._validate_outcomes(entity, data.card_progress_updates)
        learner = self._lock_learner(learner_id)
        today = local_today(data.timezone_offset_minutes)

        try:
            stored_answers = entity.answers or {}
            saved_correct = _count_outcomes(stored_answers, "correct")
            saved_answered = saved_correct + _count_outcomes(stored_answers, "incorrect")
            time_delta = max(0, data.duration_seconds - (entity.duration_seconds or 0))
            correct_delta = max(0, data.correct_count - saved_correct)
            answered_delta = max(0, data.correct_count + data.incorrect_count - saved_answered)

            now = datetime.now(timezone.utc)
            entity.status = "completed"
            entity.completed_at = now
            entity.last_activity_at = now
            entity.updated_at = now
            entity.duration_seconds = data.duration_seconds
            entity.score = data.score
            entity.correct_count = data.correct_count
            entity.incorrect_count = data.incorrect_count
            entity.skipped_count = data.skipped_count
            self.session.add(entity)

            tally = self._apply_card_outcomes(learner_id, data.card_progress_updates, today)

            # Session XP already reached the ledger through autosave deltas.
            session_xp = entity.session_xp or 0
            old_level = learner.level
            old_streak = learner.streak
            self.ledger.record_answers(learner, answered_delta, correct_delta)
            self.ledger.record_completion(
                learner,
                cards_learned=tally.learned,
                time_spent_minutes=data.duration_seconds // 60,
            )
            self.ledger.record_daily_progress(
                learner_id,
                today,
                cards_studied=correct_delta,
                cards_learned=tally.learned,
                time_spent_seconds=time_delta,
                sessions_completed=1,
            )
            streak = self.ledger.recompute_streak(learner, today)
            new_achievements = self.achievements.evaluate(
                learner_id,
                SessionContext(
                    correct_count=data.correct_count,
                    duration_seconds=data.duration_seconds,
                    total_cards=entity.total_cards,
                    completed_at_hour=local_hour(data.timezone_offset_minutes),
                    score=data.score,
                    session_xp=session_xp,
                ),
            )
            new_level = learner.level
            self.session.commit()
        except StudyEngineError:
            self.session.rollback()
            raise
        except Exception as exc:
            self.session.rollback()
            logger.exception("Completing study session %s failed, rolled back", session_id)
            raise ServerError("Failed to complete study session") from exc

        self.session.refresh(entity)
        logger.info(
            "Completed study session %s for learner %s (score=%s, learned=%d, streak=%d)",
            session_id,
            learner_id,
            data.score,
            tally.learned,
            streak.current_streak,
        )
        return CompletionResult(
            session=StudySessionRead.model_validate(entity),
            xp_earned=session_xp,
            leveled_up=new_level > old_level,
            old_level=old_level,
            new_level=new_level,
            new_achievements=new_achievements,
            streak_updated=streak.current_streak != old_streak,
            new_streak=streak.current_streak,
            cards_learned=tally.learned,
            cards_mastered=tally.mastered,
            cards_unmastered=tally.unmastered,
        )

    def abandon_session(self, learner_id: int, session_id: int) -> StudySessionRead:
        entity = self._lock_session(session_id)
        if not entity or entity.learner_id != learner_id:
            raise NotFoundError("Study session not found")
        if entity.status == "completed":
            raise SessionNotActive("Completed sessions cannot be abandoned")
        if entity.status == "active":
            now = datetime.now(timezone.utc)
            entity.status = "abandoned"
            entity.last_activity_at = now
            entity.updated_at = now
            self.session.add(entity)
            self._commit("abandon study session")
            self.session.refresh(entity)
            logger.info("Abandoned study session %s for learner %s", session_id, learner_id)
        return StudySessionRead.model_validate(entity)

    # Helpers
    def _apply_card_outcomes(self, learner_id: int, outcomes: Sequence[CardOutcome], today: date) -> OutcomeTally:
        """Run the scheduler for each answered card and upsert its progress row.

        A card counts as learned the first time it is ever answered correctly,
        and as mastered only when this update moves it into ``mastered``.
        """
        progress_map: Dict[int, CardProgress] = self.cards.get_progress_map(
            learner_id, [outcome.card_id for outcome in outcomes]
        )
        tally = OutcomeTally()
        now = datetime.now(timezone.utc)
        for outcome in outcomes:
            row = progress_map.get(outcome.card_id)
            if row is None:
                prior = CardMemory(ease_factor=self.settings.default_ease_factor)
            else:
                prior = CardMemory(
                    ease_factor=row.ease_factor,
                    interval=row.interval,
                    repetitions=row.repetitions,
                    status=row.status,
                )
            if outcome.was_correct and (row is None or row.times_correct == 0):
                tally.learned += 1
            result = calculate_sm2_update(
                prior,
                quality_for_answer(outcome.was_correct),
                today=today,
                mastery_interval_days=self.settings.mastery_interval_days,
                mastery_min_repetitions=self.settings.mastery_min_repetitions,
            )
            if row is None:
                row = CardProgress(learner_id=learner_id, card_id=outcome.card_id)
                progress_map[outcome.card_id] = row
            row.status = result.status
            row.ease_factor = result.ease_factor
            row.interval = result.interval
            row.repetitions = result.repetitions
            row.next_review_date = result.next_review_date
            row.times_seen += 1
            if outcome.was_correct:
                row.times_correct += 1
            else:
                row.times_incorrect += 1
            row.last_reviewed_at = now
            row.updated_at = now
            self.session.add(row)
            if result.became_mastered:
                tally.mastered += 1
            elif result.lost_mastery:
                tally.unmastered += 1
                logger.info("Card %s lost mastery for learner %s", outcome.card_id, learner_id)
        return tally

    def _apply_snapshot(self, entity: StudySession, data: StudySessionAutosave) -> None:
        update_data = data.model_dump(
            exclude_unset=True,
            include={"current_card_index", "answers", "streak", "session_xp", "duration_seconds"},
        )
        for key, value in update_data.items():
            if value is None:
                continue
            if key == "answers":
                value = dict(value)
            setattr(entity, key, value)
        now = datetime.now(timezone.utc)
        entity.last_activity_at = now
        entity.updated_at = now
        self.session.add(entity)

    def _evaluate_best_effort(self, learner_id: int, context: SessionContext) -> List[str]:
        try:
            unlocked = self.achievements.evaluate(learner_id, context)
            self.session.commit()
            return unlocked
        except Exception:
            self.session.rollback()
            logger.warning("Achievement check failed during autosave for learner %s", learner_id, exc_info=True)
            return []

    def _validate_outcomes(self, entity: StudySession, outcomes: Sequence[CardOutcome]) -> None:
        allowed = set(entity.selected_card_ids or [])
        unknown = sorted({outcome.card_id for outcome in outcomes if outcome.card_id not in allowed})
        if unknown:
            raise ValidationError(f"Cards not part of this session: {', '.join(str(i) for i in unknown)}")

    def _validate_method(self, method: Optional[str]) -> str:
        if not method:
            raise ValidationError("deck_id and selection_method are required")
        if method not in SELECTION_METHODS:
            raise ValidationError(f"Invalid selection_method. Options: {', '.join(SELECTION_METHODS)}")
        return method

    def _validate_guest_token(self, token: Optional[str]) -> str:
        if not token:
            raise ValidationError("deck_id and guest_token are required")
        if not GUEST_TOKEN_PATTERN.match(token):
            raise ValidationError("guest_token must be a version 4 UUID")
        return token.lower()

    def _get_learner(self, learner_id: int) -> Learner:
        learner = self.session.get(Learner, learner_id)
        if not learner:
            raise UnauthorizedError()
        return learner

    def _lock_learner(self, learner_id: int) -> Learner:
        # Ledger totals are computed from the locked row, never a request-scoped copy.
        statement = (
            select(Learner)
            .where(Learner.id == learner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        learner = self.session.exec(statement).first()
        if not learner:
            raise UnauthorizedError()
        return learner

    def _lock_session(self, session_id: int) -> Optional[StudySession]:
        statement = (
            select(StudySession)
            .where(StudySession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.exec(statement).first()

    def _get_guest_entity(self, session_id: int, guest_token: str, *, lock: bool = False) -> StudySession:
        statement = (
            select(StudySession)
            .where(StudySession.id == session_id)
            .where(StudySession.guest_token == guest_token.lower())
            .where(StudySession.is_guest == True)  # noqa: E712
        )
        if lock:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        entity = self.session.exec(statement).first()
        if not entity:
            raise NotFoundError("Study session not found or guest token invalid")
        return entity

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to %s", action)
            raise ServerError(f"Failed to {action}") from exc

    def _to_detail(
        self,
        entity: StudySession,
        cards: Sequence[Card],
        progress_map: Mapping[int, CardProgress],
        *,
        guest_token: Optional[str] = None,
        client_card_ids: Optional[Sequence[int]] = None,
    ) -> StudySessionDetail:
        base = StudySessionRead.model_validate(entity)
        reconciled = reconcile_card_order(entity.selected_card_ids, client_card_ids)
        if reconciled:
            logger.info("Client card order for session %s differs from persisted order", entity.id)
        return StudySessionDetail(
            **base.model_dump(),
            cards=[CardRead.model_validate(card) for card in cards],
            card_progress={
                str(card_id): CardProgressRead.model_validate(row) for card_id, row in progress_map.items()
            },
            guest_token=guest_token,
            order_reconciled=reconciled,
        )
