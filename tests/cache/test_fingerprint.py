from gurulo.cache import fingerprint
from gurulo.cache.fingerprint import normalize_message


def test_equivalent_messages_share_a_key():
    a = fingerprint("  Is the  cottage\tfree in JULY? ", "u1", "m", "chat")
    b = fingerprint("is the cottage free in july?", "u1", "m", "chat")
    assert a == b
    assert len(a) == 64


def test_each_field_changes_the_key():
    base = fingerprint("hello", "u1", "m", "chat")
    assert fingerprint("hello!", "u1", "m", "chat") != base
    assert fingerprint("hello", "u2", "m", "chat") != base
    assert fingerprint("hello", "u1", "other", "chat") != base
    assert fingerprint("hello", "u1", "m", "summary") != base


def test_missing_fields_use_defaults():
    assert fingerprint("hi", None) == fingerprint("hi", "anonymous", "default", "chat")


def test_normalize_message():
    assert normalize_message("  A\n\nB  ") == "a b"
    assert normalize_message(None) == ""
