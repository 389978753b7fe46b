"""Unit tests for driver selection strategies."""

from unittest.mock import AsyncMock

import pytest

from ridedispatch.domain.entities import Ride
from ridedispatch.domain.enums import SelectionPolicyName
from ridedispatch.domain.selection import (
    BroadcastPolicy,
    DirectPickPolicy,
    SelectionKind,
    build_policy,
)


class TestDirectPick:
    @pytest.mark.asyncio
    async def test_assigns_random_present_driver(self):
        presence = AsyncMock()
        presence.random_driver = AsyncMock(return_value="D1")

        outcome = await DirectPickPolicy().select_and_assign(Ride(id=1), presence)

        assert outcome.kind == SelectionKind.ASSIGN
        assert outcome.driver_id == "D1"
        assert not outcome.posts_to_board

    @pytest.mark.asyncio
    async def test_nobody_online_is_unmatched(self):
        presence = AsyncMock()
        presence.random_driver = AsyncMock(return_value=None)

        outcome = await DirectPickPolicy().select_and_assign(Ride(id=1), presence)

        assert outcome.kind == SelectionKind.UNMATCHED
        assert outcome.driver_id is None
        assert outcome.posts_to_board


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_never_picks_a_driver(self):
        presence = AsyncMock()

        outcome = await BroadcastPolicy().select_and_assign(Ride(id=1), presence)

        assert outcome.kind == SelectionKind.BROADCAST
        assert outcome.posts_to_board
        presence.random_driver.assert_not_called()


class TestBuildPolicy:
    def test_builds_by_name(self):
        assert isinstance(build_policy("direct_pick"), DirectPickPolicy)
        assert isinstance(build_policy(SelectionPolicyName.BROADCAST), BroadcastPolicy)

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown selection policy"):
            build_policy("nearest")
