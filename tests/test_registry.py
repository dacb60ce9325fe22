"""Category key registration."""
import pytest

from engine.errors import InvalidRequest


def test_register_then_list(registry):
    outcome = registry.register_key("md-del-9281", "Delhi")

    assert outcome.created is True
    assert outcome.document["categoryname"] == "Delhi"
    assert [c["key"] for c in registry.list_categories()] == ["md-del-9281"]


def test_key_and_category_are_registered_once(registry, db):
    registry.register_key("md-del-9281", "Delhi")

    assert registry.register_key("md-del-9281", "Mumbai").created is False
    assert registry.register_key("md-mum-3745", "Delhi").created is False
    assert db["categorykeys"].count_documents({}) == 1


def test_unknown_key_is_rejected(registry):
    with pytest.raises(InvalidRequest):
        registry.register_key("not-a-key", "Delhi")


def test_missing_category_is_rejected(registry):
    with pytest.raises(InvalidRequest):
        registry.register_key("md-del-9281", "")


def test_registration_refreshes_cached_listing(registry):
    assert registry.list_categories() == []

    registry.register_key("md-9281", "Minidiswar")

    assert len(registry.list_categories()) == 1


def test_non_string_fields_are_rejected(registry, db):
    registry.register_key("md-del-9281", "Delhi")

    with pytest.raises(InvalidRequest):
        registry.register_key("md-9281", {"$ne": "nobody"})
    with pytest.raises(InvalidRequest):
        registry.register_key({"$ne": "x"}, "Mumbai")

    assert db["categorykeys"].count_documents({}) == 1
