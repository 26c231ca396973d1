"""
Vote Ledger and Reddit-style voting.

Each question stores a ledger mapping voter uid -> "up" | "down". The ledger is
normalised into a VoteLedger as soon as it is read from storage, whatever shape
the column produced (dict, JSON string, list of pairs, None), so the rest of
the code never branches on representation.

Casting a vote follows a toggle state machine:

    current   requested   new
    -------   ---------   ----
    none      up          up
    none      down        down
    up        up          none   (vote retracted)
    up        down        down
    down      down        none   (vote retracted)
    down      up          up

The `upvotes` column is a compatibility cache for older clients and is always
max(0, net votes). Net votes can be negative; the clamp is intentional and only
applies to the cache. Responses always carry the signed `netVotes` too.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from homework_helper.errors import NotFoundError, ServiceUnavailableError, UnauthenticatedError
from homework_helper.models.models import Question

logger = logging.getLogger(__name__)


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class VoteLedger:
    """
    Per-question mapping of voter -> VoteDirection.

    Instances are treated as values: apply() returns a new ledger and never
    mutates the one it was called on.
    """

    __slots__ = ("_votes",)

    def __init__(self, votes: Optional[Mapping[str, VoteDirection]] = None):
        self._votes: Dict[str, VoteDirection] = dict(votes or {})

    @classmethod
    def from_storage(cls, raw: Any) -> "VoteLedger":
        """
        Build a ledger from whatever the storage layer returned.

        Accepts None, another VoteLedger, any Mapping, a JSON-encoded object or
        an iterable of (voter, vote) pairs. Entries with an empty voter or a
        vote other than "up"/"down" are dropped.
        """
        if raw is None:
            return cls()
        if isinstance(raw, VoteLedger):
            return raw
        if isinstance(raw, (str, bytes)):
            if not raw.strip():
                return cls()
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Discarding unreadable vote ledger payload")
                return cls()
            if raw is None:
                return cls()

        if isinstance(raw, Mapping):
            items = raw.items()
        else:
            try:
                items = [(k, v) for k, v in raw]
            except (TypeError, ValueError):
                logger.warning("Discarding vote ledger of unsupported type %s", type(raw).__name__)
                return cls()

        votes: Dict[str, VoteDirection] = {}
        for voter, vote in items:
            if not voter:
                continue
            try:
                votes[str(voter)] = VoteDirection(vote)
            except ValueError:
                continue
        return cls(votes)

    def to_storage(self) -> Dict[str, str]:
        """Plain dict suitable for the JSON column."""
        return {voter: vote.value for voter, vote in self._votes.items()}

    @property
    def net_votes(self) -> int:
        """Number of up entries minus number of down entries."""
        net = 0
        for vote in self._votes.values():
            net += 1 if vote is VoteDirection.UP else -1
        return net

    def vote_of(self, voter_id: Optional[str]) -> Optional[VoteDirection]:
        if not voter_id:
            return None
        return self._votes.get(voter_id)

    def apply(
        self, voter_id: str, requested: VoteDirection
    ) -> Tuple["VoteLedger", Optional[VoteDirection]]:
        """
        Apply a cast-vote request.

        Returns (new_ledger, new_state) where new_state is None when the vote
        was retracted by casting the same direction twice.
        """
        if not voter_id:
            raise ValueError("voter_id is required")
        requested = VoteDirection(requested)

        votes = dict(self._votes)
        if votes.get(voter_id) is requested:
            del votes[voter_id]
            return VoteLedger(votes), None

        votes[voter_id] = requested
        return VoteLedger(votes), requested

    def __len__(self) -> int:
        return len(self._votes)

    def __bool__(self) -> bool:
        return bool(self._votes)

    def __contains__(self, voter_id: object) -> bool:
        return voter_id in self._votes

    def __iter__(self) -> Iterator[str]:
        return iter(self._votes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, VoteLedger):
            return self._votes == other._votes
        return NotImplemented

    def __repr__(self) -> str:
        return f"VoteLedger({self.to_storage()!r})"


LedgerLike = Union[VoteLedger, Mapping[str, Any], str, None]


def calculate_net_votes(votes_map: LedgerLike) -> int:
    """Net vote score (upvotes - downvotes) for any ledger representation."""
    return VoteLedger.from_storage(votes_map).net_votes


def get_user_vote(votes_map: LedgerLike, user_id: Optional[str]) -> Optional[str]:
    """The voter's current vote ("up" / "down") or None."""
    if not votes_map or not user_id:
        return None
    vote = VoteLedger.from_storage(votes_map).vote_of(user_id)
    return vote.value if vote else None


def compat_upvotes(net_votes: int) -> int:
    """Value stored in the legacy non-negative `upvotes` column."""
    return max(0, net_votes)


def display_net_votes(question: Question) -> int:
    """
    Net votes to show for a question.

    Seed questions were loaded with an `upvotes` figure and no ledger; for an
    empty ledger the stored figure is shown instead of 0.
    """
    ledger = VoteLedger.from_storage(question.votes_map)
    if ledger:
        return ledger.net_votes
    return question.upvotes or 0


# =============================================================================
# Casting votes
# =============================================================================

@dataclass
class VoteResult:
    question_id: str
    direction: VoteDirection
    previous_vote: Optional[VoteDirection]
    user_vote: Optional[VoteDirection]
    net_votes: int
    upvotes: int

    @property
    def message(self) -> str:
        if self.direction is VoteDirection.UP:
            return "Upvote removed" if self.user_vote is None else "Question upvoted"
        return "Downvote removed" if self.user_vote is None else "Question downvoted"

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "netVotes": self.net_votes,
            "userVote": self.user_vote.value if self.user_vote else None,
            "upvotes": self.upvotes,
        }


def cast_vote(
    db: Session,
    question_id: str,
    voter_id: Optional[str],
    direction: Union[VoteDirection, str],
    max_attempts: int = 3,
) -> VoteResult:
    """
    Cast an up/down vote for `voter_id` on a question and persist the result.

    The ledger and the `upvotes` cache are written in one UPDATE guarded by the
    row's version column. If another writer updated the row between our read
    and our write, the vote is re-read and re-applied, up to `max_attempts`.

    Raises:
        UnauthenticatedError: no voter identity
        NotFoundError: the question does not exist
        ServiceUnavailableError: storage unreachable, or contention persisted
    """
    if not voter_id:
        raise UnauthenticatedError("You must be logged in to vote")
    direction = VoteDirection(direction)

    for attempt in range(1, max_attempts + 1):
        try:
            question = db.query(Question).filter(Question.id == question_id).first()
            if question is None:
                raise NotFoundError("The question you are trying to vote on does not exist")

            ledger = VoteLedger.from_storage(question.votes_map)
            previous = ledger.vote_of(voter_id)
            new_ledger, new_state = ledger.apply(voter_id, direction)
            net_votes = new_ledger.net_votes

            question.votes_map = new_ledger.to_storage()
            question.upvotes = compat_upvotes(net_votes)
            db.commit()

            logger.info(
                "Vote %s on question %s: %s -> %s (net %d)",
                direction.value, question_id,
                previous.value if previous else None,
                new_state.value if new_state else None,
                net_votes,
            )
            return VoteResult(
                question_id=question_id,
                direction=direction,
                previous_vote=previous,
                user_vote=new_state,
                net_votes=net_votes,
                upvotes=compat_upvotes(net_votes),
            )

        except StaleDataError:
            db.rollback()
            logger.warning(
                "Concurrent update on question %s (attempt %d/%d), retrying vote",
                question_id, attempt, max_attempts,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Database error while voting on question %s: %s", question_id, e)
            raise ServiceUnavailableError(
                "Database not connected. Questions cannot be voted on."
            ) from e

    raise ServiceUnavailableError("The question is being updated by others. Please try again.")
