"""
Tests for conversation reconciliation across client id and application SID attribution.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from bot_console.config import ReportsConfig
from bot_console.core.errors import ApiError
from bot_console.reports.reconciler import ConversationReconciler, merge_sessions
from bot_console.storage.models import Client, Session

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def voice(call_sid, minutes_ago=0, sid="s1", **extra):
    return Session(
        call_sid=call_sid,
        application_sid=sid,
        channel_type="voice",
        started_at=T0 - timedelta(minutes=minutes_ago),
        **extra,
    )


def chat(conversation_id, minutes_ago=0, **extra):
    return Session(
        conversation_id=conversation_id,
        client_id="client-x",
        channel_type="chat",
        started_at=T0 - timedelta(minutes=minutes_ago),
        **extra,
    )


# ===========================
# merge_sessions
# ===========================

def test_duplicates_keep_first_occurrence():
    first = voice("CA1", minutes_ago=5, duration_minutes=3)
    duplicate = voice("CA1", minutes_ago=5, duration_minutes=99)

    merged = merge_sessions([first, chat("c1", 1)], [duplicate, voice("CA2", 2)])

    assert [s.session_id for s in merged] == ["c1", "CA2", "CA1"]
    assert merged[2] is first


def test_chat_sessions_are_keyed_by_conversation_id():
    merged = merge_sessions([chat("c1", 1), chat("c2", 2)], [chat("c1", 1)])

    assert [s.session_id for s in merged] == ["c1", "c2"]


def test_call_sid_takes_precedence_over_conversation_id():
    a = Session(call_sid="CA1", conversation_id="conv-a", started_at=T0)
    b = Session(call_sid="CA1", conversation_id="conv-b", started_at=T0)

    assert merge_sessions([a], [b]) == [a]


def test_sorted_newest_first_with_stable_ties():
    tie_a = chat("tie-a", 10)
    tie_b = chat("tie-b", 10)

    merged = merge_sessions([tie_a, chat("old", 60)], [chat("new", 0), tie_b])

    assert [s.session_id for s in merged] == ["new", "tie-a", "tie-b", "old"]


def test_undated_sessions_sort_last():
    undated = Session(conversation_id="undated")

    merged = merge_sessions([undated, chat("dated", 30)])

    assert [s.session_id for s in merged] == ["dated", "undated"]


def test_sessions_without_key_are_all_kept():
    a = Session(started_at=T0)
    b = Session(started_at=T0)

    assert len(merge_sessions([a, b])) == 2


def test_merge_of_nothing_is_empty():
    assert merge_sessions() == []
    assert merge_sessions([], []) == []


# ===========================
# ConversationReconciler
# ===========================

@pytest.fixture
def client():
    return Client(id="client-x", name="Acme", application_sid=["s1", "s2"])


def route(responses):
    """Build a list_sessions side effect answering per attribution filter."""

    async def _list_sessions(*, client_id=None, application_sid=None, limit=100):
        key = f"client:{client_id}" if client_id is not None else f"sid:{application_sid}"
        result = responses[key]
        if isinstance(result, Exception):
            raise result
        return list(result)

    return _list_sessions


@pytest.mark.asyncio
async def test_fetch_unions_both_attribution_paths(mock_store, client):
    shared = voice("CA-shared", 3, sid="s1", client_id="client-x")
    mock_store.list_sessions.side_effect = route({
        "client:client-x": [chat("c1", 1), shared],
        "sid:s1": [voice("CA-shared", 3, sid="s1"), voice("CA1", 4)],
        "sid:s2": [voice("CA2", 2, sid="s2")],
    })

    sessions = await ConversationReconciler(mock_store).fetch_for_client(client)

    assert [s.session_id for s in sessions] == ["c1", "CA2", "CA-shared", "CA1"]
    assert sessions[2] is shared


@pytest.mark.asyncio
async def test_queries_use_configured_limits(mock_store, client):
    mock_store.list_sessions.side_effect = route({
        "client:client-x": [], "sid:s1": [], "sid:s2": [],
    })
    config = ReportsConfig(direct_limit=100, per_sid_limit=50)

    await ConversationReconciler(mock_store, config).fetch_for_client(client)

    calls = [c.kwargs for c in mock_store.list_sessions.await_args_list]
    assert {"client_id": "client-x", "limit": 100} in calls
    assert {"application_sid": "s1", "limit": 50} in calls
    assert {"application_sid": "s2", "limit": 50} in calls
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_failing_sid_query_does_not_blank_report(mock_store, client):
    mock_store.list_sessions.side_effect = route({
        "client:client-x": [chat("c1", 1)],
        "sid:s1": ApiError("connection reset"),
        "sid:s2": [voice("CA2", 2, sid="s2")],
    })

    sessions = await ConversationReconciler(mock_store).fetch_for_client(client)

    assert [s.session_id for s in sessions] == ["c1", "CA2"]


@pytest.mark.asyncio
async def test_failing_direct_query_keeps_sid_results(mock_store, client):
    mock_store.list_sessions.side_effect = route({
        "client:client-x": ApiError("HTTP 500", status=500),
        "sid:s1": [voice("CA1", 1)],
        "sid:s2": [voice("CA2", 2, sid="s2")],
    })

    sessions = await ConversationReconciler(mock_store).fetch_for_client(client)

    assert [s.session_id for s in sessions] == ["CA1", "CA2"]


@pytest.mark.asyncio
async def test_total_failure_returns_empty(mock_store, client):
    mock_store.list_sessions.side_effect = ApiError("offline")

    assert await ConversationReconciler(mock_store).fetch_for_client(client) == []


@pytest.mark.asyncio
async def test_client_without_sids_issues_only_direct_query(mock_store):
    mock_store.list_sessions.side_effect = route({"client:solo": [chat("c1")]})

    sessions = await ConversationReconciler(mock_store).fetch_for_client(Client(id="solo"))

    assert [s.session_id for s in sessions] == ["c1"]
    assert mock_store.list_sessions.await_count == 1


@pytest.mark.asyncio
async def test_sub_queries_run_concurrently(mock_store, client):
    in_flight = 0
    peak = 0

    async def _list_sessions(**kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return []

    mock_store.list_sessions.side_effect = _list_sessions

    await ConversationReconciler(mock_store).fetch_for_client(client)

    assert peak == 3


def test_client_application_sid_normalisation():
    assert Client.from_dict({"_id": "a", "application_sid": "s1, s2 ,"}).application_sid == ["s1", "s2"]
    assert Client.from_dict({"_id": "a", "application_sid": ["s1", None]}).application_sid == ["s1"]
    assert Client.from_dict({"_id": "a", "application_sid": 42}).application_sid == ["42"]
    assert Client.from_dict({"_id": "a"}).application_sid == []
