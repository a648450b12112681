"""
Unit tests for the Socket.IO layer: subscription permissions, connection
bookkeeping, conversation rooms and the chat handlers.  The database session
and conversation service are mocked.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from truelocal.models import Message
from truelocal.realtime import socketServer
from truelocal.realtime.changeFeed import ChangeEvent, ChangeFeed, ChangeType
from truelocal.realtime.handlers import chatHandler
from truelocal.services import conversationService

pytestmark = pytest.mark.asyncio

USER_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"


@pytest.fixture
def connected_sid():
    sid = "sid-1"
    socketServer._register_connection(sid, USER_ID, {"user_type": "provider"})
    yield sid
    socketServer._unregister_connection(sid)


class TestAllowedFilter:

    async def test_own_role_column_only(self):
        meta = {"user_id": USER_ID, "user_type": "provider"}
        assert socketServer._allowed_filter(meta, "bookings", "provider_id", USER_ID)
        assert not socketServer._allowed_filter(meta, "bookings", "customer_id", USER_ID)
        assert not socketServer._allowed_filter(meta, "bookings", "provider_id", str(uuid.uuid4()))

    async def test_services_scoped_to_self(self):
        meta = {"user_id": USER_ID, "user_type": "customer"}
        assert socketServer._allowed_filter(meta, "services", "provider_id", USER_ID)
        assert not socketServer._allowed_filter(meta, "services", "title", USER_ID)

    async def test_unknown_table(self):
        meta = {"user_id": USER_ID, "user_type": "customer"}
        assert not socketServer._allowed_filter(meta, "profiles", "id", USER_ID)


class TestConnection:

    async def test_connect_without_token_rejected(self):
        assert await socketServer.connect("sid-x", {}, None) is False
        assert socketServer.get_sid_meta("sid-x") is None

    async def test_disconnect_drops_subscriptions(self, connected_sid):
        feed = ChangeFeed()
        sub = feed.subscribe("bookings", lambda change: None, column="provider_id", value=USER_ID)
        socketServer._sid_subscriptions[connected_sid] = {sub.id: sub}

        await socketServer.disconnect(connected_sid)

        assert sub.active is False
        assert feed.subscription_count() == 0
        assert socketServer.get_sid_meta(connected_sid) is None


class TestSendMessage:

    async def test_requires_authentication(self):
        ack = await chatHandler.handle_send_message("unknown-sid", {"conversation_id": "x"})
        assert ack["ok"] is False

    async def test_client_ref_length_checked(self, connected_sid):
        ack = await chatHandler.handle_send_message(
            connected_sid,
            {"conversation_id": str(uuid.uuid4()), "message": "hi", "client_ref": "x" * 65},
        )
        assert ack["ok"] is False

    async def test_stored_message_acked_with_client_ref(self, connected_sid):
        conversation_id = uuid.uuid4()
        stored = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=uuid.UUID(USER_ID),
            message="On my way",
            client_ref="tab-7",
            created_at=datetime(2025, 3, 12, tzinfo=timezone.utc),
        )
        session = AsyncMock()
        session.info = {}
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session

        with patch.object(chatHandler, "async_session_factory", factory), patch.object(
            conversationService, "send_message", AsyncMock(return_value=stored),
        ) as send:
            ack = await chatHandler.handle_send_message(
                connected_sid,
                {"conversation_id": str(conversation_id), "message": "On my way", "client_ref": "tab-7"},
            )

        assert ack["ok"] is True
        assert ack["client_ref"] == "tab-7"
        assert ack["message"]["id"] == str(stored.id)
        assert send.await_args.kwargs["client_ref"] == "tab-7"
        session.commit.assert_awaited_once()

    async def test_service_error_rolls_back(self, connected_sid):
        session = AsyncMock()
        session.info = {}
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session

        with patch.object(chatHandler, "async_session_factory", factory), patch.object(
            conversationService,
            "send_message",
            AsyncMock(side_effect=conversationService.NotParticipantError("nope")),
        ):
            ack = await chatHandler.handle_send_message(
                connected_sid, {"conversation_id": str(uuid.uuid4()), "message": "hi"},
            )

        assert ack == {"ok": False, "error": "nope"}
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()


class TestJoinConversation:

    @pytest.mark.parametrize("conversation_id", ["not-a-uuid", 12345, ["x"]])
    async def test_malformed_id_rejected(self, connected_sid, conversation_id):
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = AsyncMock()

        with patch.object(socketServer, "async_session_factory", factory):
            ack = await socketServer.handle_join_conversation(
                connected_sid, {"conversation_id": conversation_id},
            )

        assert ack == {"ok": False, "error": "conversation_id is malformed"}


class TestConversationUpdates:

    async def test_each_side_gets_its_own_unread_count(self):
        customer_id = str(uuid.uuid4())
        provider_id = str(uuid.uuid4())
        conversation_id = str(uuid.uuid4())
        change = ChangeEvent(
            table="conversations",
            event=ChangeType.UPDATE,
            record={
                "id": conversation_id,
                "customer_id": customer_id,
                "provider_id": provider_id,
                "last_message": "See you Thursday",
                "last_message_at": "2025-03-12T15:00:00+00:00",
                "customer_unread": 0,
                "provider_unread": 2,
            },
        )

        with patch.object(socketServer.sio, "emit", AsyncMock()) as emit:
            await chatHandler._on_conversation_changed(change)

        sent = {call.kwargs["room"]: call.args for call in emit.await_args_list}
        assert set(sent) == {f"customer_{customer_id}", f"provider_{provider_id}"}
        event, payload = sent[f"provider_{provider_id}"]
        assert event == "chat:conversation_updated"
        assert payload["unread_count"] == 2
        assert payload["conversation_id"] == conversation_id
        assert sent[f"customer_{customer_id}"][1]["unread_count"] == 0
