"""
Unit tests for merging confirmed messages into an optimistic message list.
"""

from truelocal.services.conversationService import reconcile_messages


class TestReconcileMessages:

    def test_optimistic_entry_replaced_by_client_ref(self):
        local = [
            {"id": "m1", "message": "hello"},
            {"id": "temp-1", "message": "on my way", "client_ref": "ref-1"},
        ]
        confirmed = {"id": "m2", "message": "on my way", "client_ref": "ref-1"}
        merged = reconcile_messages(local, confirmed)
        assert len(merged) == 2
        assert merged[1]["id"] == "m2"

    def test_duplicate_echo_replaced_by_id(self):
        local = [{"id": "m1", "message": "hello"}]
        merged = reconcile_messages(local, {"id": "m1", "message": "hello"})
        assert merged == [{"id": "m1", "message": "hello"}]

    def test_unrelated_message_appended(self):
        local = [{"id": "m1", "message": "hello"}]
        merged = reconcile_messages(local, {"id": "m2", "message": "hi back"})
        assert [m["id"] for m in merged] == ["m1", "m2"]

    def test_two_identical_texts_stay_distinct(self):
        local = [
            {"id": "temp-a", "message": "ok", "client_ref": "a"},
            {"id": "temp-b", "message": "ok", "client_ref": "b"},
        ]
        merged = reconcile_messages(local, {"id": "m9", "message": "ok", "client_ref": "b"})
        assert [m["id"] for m in merged] == ["temp-a", "m9"]

    def test_input_list_not_mutated(self):
        local = [{"id": "temp", "client_ref": "r"}]
        reconcile_messages(local, {"id": "m1", "client_ref": "r"})
        assert local == [{"id": "temp", "client_ref": "r"}]
