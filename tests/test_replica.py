"""Tests for the state replica and its merge rules."""

import copy

import pytest

from speechbot.errors import ChannelRemovedError
from speechbot.models import Channel, ChannelUpdate, User, UserUpdate, merge_channel, merge_user
from speechbot.protocol import decode_domain
from speechbot.replica import StateReplica


@pytest.fixture
def replica():
    r = StateReplica()
    r.load_users(
        "robot",
        {"nickname": "Robot", "privileges": {}},
        {
            "robot": {"nickname": "Robot", "full_name": "Robot Bot", "privileges": {}},
            "alice": {"nickname": "Al", "full_name": "Alice A", "privileges": {"admin": 1}},
            "bob": {"nickname": "Bobby", "full_name": "Bob B", "privileges": {}},
        },
    )
    return r


def _welcome(replica, channel_id="lobby", **channel):
    replica.welcome({"channel_id": channel_id, "channel": channel})


class TestMerge:
    def test_user_merge_keeps_unspecified_fields(self):
        user = User.from_payload(
            {"username": "bob", "nickname": "Bobby", "full_name": "Bob B", "status": "away"}
        )
        merge_user(user, UserUpdate.from_payload({"username": "bob", "nickname": "Robert"}))
        assert user.nickname == "Robert"
        assert user.full_name == "Bob B"
        assert user.extra == {"status": "away"}

    def test_channel_merge_overwrites_only_given_fields(self):
        channel = Channel.from_payload("lobby", {"title": "Lobby", "pm": True, "topic": "hi"})
        merge_channel(channel, ChannelUpdate.from_payload({"pm": False, "private": 1}))
        assert channel.title == "Lobby"
        assert channel.topic == "hi"
        assert channel.pm is False
        assert channel.extra == {"private": 1}

    def test_channel_update_ignores_id_keys(self):
        update = ChannelUpdate.from_payload({"id": "lobby", "title": "Lobby"})
        assert update.extra == {}
        assert update.title == "Lobby"

    def test_channel_update_skips_malformed_role_entries(self):
        update = ChannelUpdate.from_payload(
            {"users": {"bob": "admin", "alice": {"role": "admin"}}, "live_users": ["bob"]}
        )
        assert update.users == {"alice": {"role": "admin"}}
        assert update.live_users is None


class TestLoginMerge:
    def test_merge_into_existing_channel(self, replica):
        replica.merge_channels({"lobby": {"title": "Lobby", "topic": "old"}})
        replica.channels["lobby"].ui = True
        replica.merge_channels({"lobby": {"topic": "new"}})

        lobby = replica.channels["lobby"]
        assert lobby.title == "Lobby"
        assert lobby.topic == "new"
        assert lobby.ui is True

    def test_merge_is_idempotent(self, replica):
        payload = {
            "lobby": {"title": "Lobby", "users": {"alice": {"admin": 1}}},
            "dm": {"pm": True, "history": [{"id": "h1"}]},
        }
        replica.merge_channels(copy.deepcopy(payload))
        once = copy.deepcopy(replica.channels)
        replica.merge_channels(copy.deepcopy(payload))
        assert replica.channels == once

    def test_login_does_not_drop_unlisted_channels(self, replica):
        replica.merge_channels({"dm-alice": {"pm": True}})
        replica.merge_channels({"lobby": {}})
        assert set(replica.channels) == {"dm-alice", "lobby"}


class TestMembership:
    def test_joined_unknown_channel_is_noop(self, replica):
        replica.joined({"channel_id": "nowhere", "username": "bob", "user": {"username": "bob"}})
        assert replica.channels == {}

    def test_joined_and_left_after_welcome(self, replica):
        _welcome(replica)
        replica.joined({"channel_id": "lobby", "user": {"username": "bob"}})
        replica.joined({"channel_id": "lobby", "username": "alice"})
        assert set(replica.channels["lobby"].live_users) == {"bob", "alice"}

        replica.left({"channel_id": "lobby", "username": "bob", "reason": "self"})
        assert set(replica.channels["lobby"].live_users) == {"alice"}

    def test_left_unknown_channel_is_noop(self, replica):
        replica.left({"channel_id": "nowhere", "username": "bob"})
        assert replica.channels == {}

    def test_membership_independent_of_ui(self, replica):
        replica.merge_channels({"lobby": {}})
        replica.joined({"channel_id": "lobby", "username": "bob"})
        assert replica.channels["lobby"].ui is False
        assert replica.channels["lobby"].live_users == {"bob": {"live": 1}}


class TestWelcomeGoodbye:
    def test_welcome_creates_channel_and_drops_history(self, replica):
        _welcome(replica, title="Lobby", history=[{"id": "1"}], live_users={"bob": {"live": 1}})
        lobby = replica.channels["lobby"]
        assert lobby.ui is True
        assert lobby.history is None
        assert lobby.title == "Lobby"
        assert lobby.live_users == {"bob": {"live": 1}}

    def test_welcome_merges_existing(self, replica):
        replica.merge_channels({"lobby": {"title": "Lobby", "pm": False}})
        _welcome(replica, topic="chat")
        lobby = replica.channels["lobby"]
        assert lobby.title == "Lobby"
        assert lobby.topic == "chat"

    def test_goodbye_clears_ui_and_roster(self, replica):
        _welcome(replica, live_users={"bob": {"live": 1}})
        effects = replica.goodbye({"channel_id": "lobby", "reason": "self"})
        lobby = replica.channels["lobby"]
        assert lobby.ui is False
        assert lobby.live_users is None
        assert effects.notices == []

    @pytest.mark.parametrize("reason", ["private", "delete", "kick"])
    def test_goodbye_removal_reports_notice(self, replica, reason):
        _welcome(replica)
        effects = replica.goodbye({"channel_id": "lobby", "reason": reason})
        assert len(effects.notices) == 1
        notice = effects.notices[0]
        assert isinstance(notice, ChannelRemovedError)
        assert notice.channel_id == "lobby"
        assert notice.reason == reason

    def test_goodbye_unknown_channel(self, replica):
        effects = replica.goodbye({"channel_id": "nowhere", "reason": "kick"})
        assert effects.notices == []


class TestSaid:
    def test_enriches_message(self, replica):
        _welcome(replica)
        effects = replica.said(
            {
                "id": "m1",
                "channel_id": "lobby",
                "username": "bob",
                "content": "<p>Hello &amp; welcome</p>",
                "date": 1700000000,
            }
        )
        chat = effects.chat
        assert chat.type == "standard"
        assert chat.text == "Hello & welcome"
        assert chat.nickname == "Bobby"
        assert chat.full_name == "Bob B"
        assert chat.is_admin is False

    def test_global_admin(self, replica):
        chat = replica.said({"channel_id": "lobby", "username": "alice", "content": "x"}).chat
        assert chat.is_admin is True

    def test_channel_admin_without_global_admin(self, replica):
        replica.merge_channels({"lobby": {"users": {"bob": {"admin": True}}}})
        chat = replica.said({"channel_id": "lobby", "username": "bob", "content": "x"}).chat
        assert chat.is_admin is True

    def test_channel_admin_only_counts_in_that_channel(self, replica):
        replica.merge_channels(
            {"lobby": {"users": {"bob": {"admin": True}}}, "games": {"users": {"bob": {}}}}
        )
        chat = replica.said({"channel_id": "games", "username": "bob", "content": "x"}).chat
        assert chat.is_admin is False

    def test_unknown_channel_and_user(self, replica):
        chat = replica.said(
            {"channel_id": "nowhere", "username": "ghost", "type": "pose", "content": "waves"}
        ).chat
        assert chat.type == "pose"
        assert chat.nickname is None
        assert chat.is_admin is False

    def test_said_does_not_touch_replica(self, replica):
        replica.said({"channel_id": "nowhere", "username": "bob", "content": "x"})
        assert replica.channels == {}


class TestUserUpdated:
    def test_merges_other_user(self, replica):
        replica.user_updated({"username": "bob", "nickname": "Robert"})
        assert replica.users["bob"].nickname == "Robert"
        assert replica.users["bob"].full_name == "Bob B"
        assert replica.user.nickname == "Robot"

    def test_merges_own_record(self, replica):
        replica.user_updated({"username": "robot", "full_name": "Mr Robot"})
        assert replica.user.full_name == "Mr Robot"
        assert replica.user.nickname == "Robot"
        assert replica.users["robot"].full_name == "Mr Robot"

    def test_creates_new_user(self, replica):
        replica.user_updated({"username": "carol", "nickname": "C"})
        assert replica.users["carol"].nickname == "C"


class TestChannelUpdated:
    def test_creates_and_merges(self, replica):
        replica.channel_updated({"channel_id": "lobby", "channel": {"title": "Lobby"}})
        replica.channel_updated({"channel_id": "lobby", "channel": {"topic": "t"}})
        assert replica.channels["lobby"].title == "Lobby"
        assert replica.channels["lobby"].topic == "t"

    def test_deleted_removes_channel(self, replica):
        _welcome(replica, title="Lobby", live_users={"bob": {"live": 1}})
        effects = replica.channel_updated({"channel_id": "lobby", "channel": {"deleted": True}})
        assert "lobby" not in replica.channels
        assert effects.joins == []

    def test_pm_invite_requests_join(self, replica):
        effects = replica.channel_updated(
            {"channel_id": "dm-alice", "channel": {"pm": True, "users": {"alice": {}, "robot": {}}}}
        )
        assert effects.joins == ["dm-alice"]

    def test_pm_with_ui_does_not_rejoin(self, replica):
        _welcome(replica, "dm-alice", pm=True)
        effects = replica.channel_updated({"channel_id": "dm-alice", "channel": {"topic": "x"}})
        assert effects.joins == []


class TestApply:
    def test_routes_known_command(self, replica):
        _welcome(replica)
        replica.apply(decode_domain({"cmd": "joined", "channel_id": "lobby", "username": "bob"}))
        assert "bob" in replica.channels["lobby"].live_users

    def test_unknown_command_is_noop(self, replica):
        effects = replica.apply(decode_domain({"cmd": "avatar_changed", "username": "bob"}))
        assert effects.joins == []
        assert effects.chat is None
