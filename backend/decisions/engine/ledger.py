"""Response ledger: one active response per (user, axis) on a single aggregate.

The ledger does not know about lifecycle state. The owning aggregate checks
locks and option ownership first and only then calls in here, so every
method below always succeeds.
"""
import dataclasses
from datetime import datetime
from typing import Iterable, Iterator, Optional

from decisions.engine.records import (
    RSVP_AXIS,
    Option,
    Response,
    RSVPType,
    new_id,
    utc_now,
)


class ResponseLedger:
    def __init__(self, aggregate_id: str, responses: Iterable[Response] = ()):
        self.aggregate_id = aggregate_id
        self._responses: list[Response] = list(responses)

    def __iter__(self) -> Iterator[Response]:
        return iter(list(self._responses))

    def __len__(self) -> int:
        return len(self._responses)

    @property
    def responses(self) -> list[Response]:
        return list(self._responses)

    def votes(self) -> list[Response]:
        return [r for r in self._responses if r.is_vote]

    def rsvps(self) -> list[Response]:
        return [r for r in self._responses if r.axis == RSVP_AXIS]

    # ── Queries ────────────────────────────────────────────────────
    def find_user_vote(self, user_id: str, axis: Optional[str] = None) -> Optional[Response]:
        """The user's vote on ``axis``, or their first vote anywhere when no axis is given."""
        for resp in self._responses:
            if resp.user_id == user_id and resp.is_vote and (axis is None or resp.axis == axis):
                return resp
        return None

    def find_user_votes(self, user_id: str) -> list[Response]:
        return [r for r in self._responses if r.user_id == user_id and r.is_vote]

    def find_user_rsvp(self, user_id: str) -> Optional[Response]:
        for resp in self._responses:
            if resp.user_id == user_id and resp.axis == RSVP_AXIS:
                return resp
        return None

    def count_rsvp_by_type(self) -> dict[str, int]:
        counts = {t.value: 0 for t in RSVPType}
        for resp in self.rsvps():
            counts[resp.response_type.value] += 1
        return counts

    # ── Mutations ──────────────────────────────────────────────────
    def submit_vote(self, user_id: str, option: Option, now: Optional[datetime] = None) -> Response:
        """Point the user's vote on the option's axis at ``option``.

        A prior vote on the same axis keeps its id and is moved; voting for the
        option already chosen changes nothing.
        """
        now = now or utc_now()
        axis = option.axis
        prior = self.find_user_vote(user_id, axis)
        if prior is not None:
            if prior.option_id == option.option_id:
                return prior
            moved = dataclasses.replace(prior, option_id=option.option_id, updated_at=now)
            self._swap(prior, moved)
            return moved

        vote = Response(
            response_id=new_id(),
            aggregate_id=self.aggregate_id,
            user_id=user_id,
            axis=axis,
            option_id=option.option_id,
            created_at=now,
            updated_at=now,
        )
        self._responses.append(vote)
        return vote

    def retract_vote(self, user_id: str, axis: str) -> Optional[Response]:
        prior = self.find_user_vote(user_id, axis)
        if prior is not None:
            self._responses.remove(prior)
        return prior

    def submit_rsvp(self, user_id: str, response_type: RSVPType, now: Optional[datetime] = None) -> Response:
        now = now or utc_now()
        prior = self.find_user_rsvp(user_id)
        if prior is not None:
            if prior.response_type == response_type:
                return prior
            updated = dataclasses.replace(prior, response_type=response_type, updated_at=now)
            self._swap(prior, updated)
            return updated

        rsvp = Response(
            response_id=new_id(),
            aggregate_id=self.aggregate_id,
            user_id=user_id,
            axis=RSVP_AXIS,
            response_type=response_type,
            created_at=now,
            updated_at=now,
        )
        self._responses.append(rsvp)
        return rsvp

    def drop_votes_for(self, option_ids: Iterable[str]) -> list[Response]:
        """Remove every vote referencing one of ``option_ids``; return what was removed."""
        doomed = set(option_ids)
        dropped = [r for r in self._responses if r.option_id in doomed]
        self._responses = [r for r in self._responses if r.option_id not in doomed]
        return dropped

    def _swap(self, old: Response, new: Response) -> None:
        self._responses[self._responses.index(old)] = new
