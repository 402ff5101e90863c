"""
Tests for the end-user support widget
"""

import asyncio
from unittest.mock import patch

import pytest

from infrastructure.store import Query, StoreUnavailableError
from services.auth_service import AuthSession
from services.auth_service.models import Identity
from services.chat_service import ConversationRepository, SupportWidget
from services.chat_service.models import (
    ConversationStatus,
    Message,
    PendingMessage,
    SenderRole,
    SyntheticMessage,
)
from tests.helpers import drain


class WidgetTestCase:
    """Common setup: one store, one auth session, one widget per test"""

    @pytest.fixture(autouse=True)
    def _setup(self, store, notifier, config, clock):
        self.store = store
        self.notifier = notifier
        self.config = config
        self.clock = clock
        self.auth = AuthSession(config)
        self.repository = ConversationRepository(store, config)

    def make_widget(self, auth=None) -> SupportWidget:
        return SupportWidget(self.store, auth or self.auth, self.notifier, self.config, clock=self.clock)

    async def seed_conversation(self, user_id="u1", texts=()):
        identity = Identity(user_id=user_id, email=f"{user_id}@example.com")
        conversation_id = await self.repository.create_conversation(identity, texts[0] if texts else "")
        for text in texts:
            await self.repository.add_message(conversation_id, text, SenderRole.END_USER)
        return conversation_id

    @staticmethod
    def texts(widget):
        return [entry.text for entry in widget.messages]


class TestChatLocator(WidgetTestCase):
    """Resolving the user's conversation"""

    def test_new_user_sees_greeting(self):
        async def scenario():
            self.auth.sign_in("u1", "u1@example.com")
            widget = self.make_widget()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.resolved_id is None
        assert len(widget.messages) == 1
        greeting = widget.messages[0]
        assert isinstance(greeting, SyntheticMessage)
        assert greeting.key == "synthetic:greeting"
        assert greeting.text == self.config.chat.greeting_message

    def test_returning_user_resolves_conversation(self):
        async def scenario():
            await self.seed_conversation("u1", ["Where is my parcel?"])
            self.auth.sign_in("u1", "u1@example.com")
            widget = self.make_widget()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.resolved_id == "u1"

    def test_open_requires_identity(self):
        async def scenario():
            widget = self.make_widget()
            return widget.open(), widget

        opened, widget = asyncio.run(scenario())

        assert opened is False
        assert widget.is_open is False


class TestMessageStream(WidgetTestCase):
    """Live history while the widget is visible"""

    def test_history_replaces_entries_in_order(self):
        async def scenario():
            await self.seed_conversation("u1", ["first", "second"])
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert self.texts(widget) == ["first", "second"]
        assert all(isinstance(entry, Message) for entry in widget.messages)

    def test_empty_history_shows_welcome_back(self):
        async def scenario():
            await self.seed_conversation("u1")
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert len(widget.messages) == 1
        assert widget.messages[0].key == "synthetic:welcome-back"
        assert widget.messages[0].text == self.config.chat.welcome_back_message

    def test_stream_and_watcher_are_never_both_active(self):
        async def scenario():
            await self.seed_conversation("u1", ["hi"])
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            states = [(widget.stream.subscription.is_active, widget.watcher.subscription.is_active)]
            widget.open()
            await drain()
            states.append((widget.stream.subscription.is_active, widget.watcher.subscription.is_active))
            widget.close()
            await drain()
            states.append((widget.stream.subscription.is_active, widget.watcher.subscription.is_active))
            return states

        states = asyncio.run(scenario())

        assert states == [(False, True), (True, False), (False, True)]

    def test_entries_survive_hide_and_show(self):
        async def scenario():
            await self.seed_conversation("u1", ["hi"])
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await drain()
            widget.toggle()
            await drain()
            hidden = self.texts(widget)
            widget.toggle()
            await drain()
            return hidden, self.texts(widget)

        hidden, shown = asyncio.run(scenario())

        assert hidden == ["hi"]
        assert shown == ["hi"]


class TestSendPipeline(WidgetTestCase):
    """Optimistic sends, durable writes and rollback"""

    def test_first_contact_creates_conversation(self):
        async def scenario():
            self.auth.sign_in("u1", "u1@example.com")
            widget = self.make_widget()
            await drain()
            widget.open()
            sent = await widget.send("  My order is late  ")
            await drain()
            conversation = await self.store.get("supportChats/u1")
            return widget, sent, conversation

        widget, sent, conversation = asyncio.run(scenario())

        assert sent is True
        assert widget.resolved_id == "u1"
        assert conversation.get("user_id") == "u1"
        assert conversation.get("user_email") == "u1@example.com"
        assert conversation.get("last_message") == "My order is late"
        assert conversation.get("status") == ConversationStatus.NEW.value
        assert self.texts(widget) == ["My order is late", self.config.chat.auto_reply_message]
        assert [entry.sender for entry in widget.messages] == [SenderRole.END_USER, SenderRole.SYSTEM]

    def test_anonymous_contact_label(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            await widget.send("hello")
            return await self.store.get("supportChats/u1")

        conversation = asyncio.run(scenario())

        assert conversation.get("user_email") == "anonymous"

    def test_entries_appear_before_write_completes(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            task = asyncio.ensure_future(widget.send("hello"))
            await asyncio.sleep(0)
            optimistic = list(widget.messages)
            await task
            return optimistic

        optimistic = asyncio.run(scenario())

        pending = [entry for entry in optimistic if isinstance(entry, PendingMessage)]
        assert [entry.text for entry in pending] == ["hello", self.config.chat.auto_reply_message]
        assert optimistic[0].key == "synthetic:greeting"

    def test_follow_up_message_has_no_auto_reply(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await widget.send("first")
            await drain()
            await widget.send("second")
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert self.texts(widget) == ["first", self.config.chat.auto_reply_message, "second"]

    def test_blank_text_is_ignored(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            before = widget.messages
            sent = await widget.send("   ")
            return before, widget.messages, sent

        before, after, sent = asyncio.run(scenario())

        assert sent is False
        assert before == after
        assert self.notifier.notices == []

    def test_failed_send_restores_previous_entries(self):
        async def scenario():
            await self.seed_conversation("u1", ["hi"])
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await drain()
            before = widget.messages
            with patch.object(self.store, "add", side_effect=StoreUnavailableError("offline")):
                sent = await widget.send("are you there?")
            return before, widget.messages, sent

        before, after, sent = asyncio.run(scenario())

        assert sent is False
        assert after == before
        assert self.notifier.messages("error") == ["Failed to send message."]

    def test_failed_first_contact_restores_greeting(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            before = widget.messages
            with patch.object(self.store, "set", side_effect=StoreUnavailableError("offline")):
                sent = await widget.send("hello")
            await drain()
            conversation = await self.store.get("supportChats/u1")
            return widget, before, sent, conversation

        widget, before, sent, conversation = asyncio.run(scenario())

        assert sent is False
        assert widget.messages == before
        assert widget.resolved_id is None
        assert conversation is None

    def test_partial_first_send_keeps_conversation_by_default(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            with patch.object(self.store, "add", side_effect=StoreUnavailableError("offline")):
                sent = await widget.send("hello")
            await drain()
            conversation = await self.store.get("supportChats/u1")
            return widget, sent, conversation

        widget, sent, conversation = asyncio.run(scenario())

        assert sent is False
        assert conversation is not None
        assert widget.resolved_id == "u1"

    def test_partial_first_send_cleanup_policy(self):
        self.config.chat.orphan_policy = "cleanup"

        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            with patch.object(self.store, "add", side_effect=StoreUnavailableError("offline")):
                sent = await widget.send("hello")
            await drain()
            conversation = await self.store.get("supportChats/u1")
            return widget, sent, conversation

        widget, sent, conversation = asyncio.run(scenario())

        assert sent is False
        assert conversation is None
        assert widget.resolved_id is None

    def test_concurrent_first_sends_share_one_conversation(self):
        async def scenario():
            self.auth.sign_in("u1")
            other_tab = AuthSession(self.config)
            other_tab.sign_in("u1")
            first = self.make_widget()
            second = self.make_widget(other_tab)
            await drain()
            results = await asyncio.gather(first.send("from tab one"), second.send("from tab two"))
            await drain()
            conversations = await self.store.query(Query("supportChats").where("user_id", "==", "u1"))
            return first, second, results, conversations

        first, second, results, conversations = asyncio.run(scenario())

        assert results == [True, True]
        assert len(conversations) == 1
        assert first.resolved_id == second.resolved_id == "u1"

    def test_generated_ids_strategy(self):
        self.config.chat.conversation_id_strategy = "generated"

        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            await widget.send("hello")
            await drain()
            conversations = await self.store.query(Query("supportChats"))
            return widget, conversations

        widget, conversations = asyncio.run(scenario())

        assert len(conversations) == 1
        assert conversations[0].document_id != "u1"
        assert widget.resolved_id == conversations[0].document_id


class TestNotificationWatcher(WidgetTestCase):
    """Unread operator replies while the widget is hidden"""

    async def _conversation_with_hidden_widget(self):
        self.auth.sign_in("u1")
        widget = self.make_widget()
        await drain()
        widget.open()
        await widget.send("My order is late")
        await drain()
        widget.close()
        await drain()
        return widget

    def test_operator_reply_while_hidden_is_counted(self):
        async def scenario():
            widget = await self._conversation_with_hidden_widget()
            await self.repository.add_message("u1", "Hello, how can I help?", SenderRole.OPERATOR)
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.unread_count == 1
        assert self.notifier.messages("info") == ["Agent has replied to your message."]

    def test_non_operator_messages_are_not_counted(self):
        async def scenario():
            widget = await self._conversation_with_hidden_widget()
            await self.repository.add_message("u1", "note", SenderRole.SYSTEM)
            await self.repository.add_message("u1", "me again", SenderRole.END_USER)
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.unread_count == 0
        assert self.notifier.messages("info") == []

    def test_opening_resets_unread_and_shows_reply(self):
        async def scenario():
            widget = await self._conversation_with_hidden_widget()
            await self.repository.add_message("u1", "Hello, how can I help?", SenderRole.OPERATOR)
            await drain()
            widget.open()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.unread_count == 0
        assert self.texts(widget)[-1] == "Hello, how can I help?"

    def test_seen_replies_are_not_counted_again(self):
        async def scenario():
            widget = await self._conversation_with_hidden_widget()
            await self.repository.add_message("u1", "Hello, how can I help?", SenderRole.OPERATOR)
            await drain()
            widget.open()
            await drain()
            widget.close()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.unread_count == 0
        assert len(self.notifier.messages("info")) == 1

    def test_replies_while_open_do_not_notify(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await widget.send("hello")
            await drain()
            await self.repository.add_message("u1", "Hi there", SenderRole.OPERATOR)
            await drain()
            widget.close()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.unread_count == 0
        assert self.notifier.messages("info") == []


class TestIdentityChanges(WidgetTestCase):
    """Sign-out and account switches"""

    def test_sign_out_tears_everything_down(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await widget.send("hello")
            await drain()
            self.auth.sign_out()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert self.store.listener_count == 0
        assert widget.resolved_id is None
        assert widget.messages == []
        assert widget.is_open is False
        assert widget.unread_count == 0

    def test_switching_accounts_does_not_leak_conversation(self):
        async def scenario():
            await self.seed_conversation("u1", ["private question"])
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.open()
            await drain()
            self.auth.sign_in("u2")
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert widget.resolved_id is None
        assert "private question" not in self.texts(widget)
        assert self.texts(widget) == [self.config.chat.greeting_message]

    def test_dispose_stops_listening(self):
        async def scenario():
            self.auth.sign_in("u1")
            widget = self.make_widget()
            await drain()
            widget.dispose()
            self.auth.sign_out()
            await drain()
            return widget

        widget = asyncio.run(scenario())

        assert self.store.listener_count == 0
        assert widget.state.identity is not None


if __name__ == "__main__":
    pytest.main([__file__])
