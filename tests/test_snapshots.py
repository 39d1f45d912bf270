from cwtxkit.snapshots import parse_storage


def test_parse_storage_decodes_pairs():
    assert parse_storage([(b"count", b"1"), (b"owner", b"sender")]) == [
        ("count", "1"),
        ("owner", "sender"),
    ]


def test_parse_storage_empty():
    assert parse_storage([]) == []


def test_parse_storage_replaces_invalid_utf8():
    assert parse_storage([(b"\xffkey", b"val\xfe")]) == [("\ufffdkey", "val\ufffd")]


def test_parse_storage_preserves_order_and_length():
    storage = [(bytes([i]), bytes([i])) for i in range(ord("a"), ord("f"))]
    parsed = parse_storage(storage)
    assert len(parsed) == len(storage)
    assert [k for k, _ in parsed] == [k.decode() for k, _ in storage]