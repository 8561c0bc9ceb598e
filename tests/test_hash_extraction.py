import json

import pytest

from mcp_gate.hash_extraction import NO_HASH, extract_transaction_hash, find_transaction_hash

HASH = "0F" * 32
OTHER = "ab" * 32


@pytest.mark.parametrize(
    "payload",
    [
        HASH,
        {"hash": HASH},
        {"transaction_hash": HASH},
        {"txHash": HASH},
        [{"type": "text", "text": json.dumps({"hash": HASH})}],
        json.dumps([{"type": "text", "text": json.dumps({"result": "ok", "hash": HASH})}]),
        json.dumps({"txHash": HASH}),
        f"Transaction submitted. Hash: {HASH}",
        f'{{"status": "ok", "hash": "{HASH}"',  # truncated JSON falls back to free text
    ],
)
def test_recognized_shapes(payload):
    assert extract_transaction_hash(payload) == HASH


def test_field_priority():
    assert extract_transaction_hash({"txHash": OTHER, "hash": HASH}) == HASH


def test_array_text_before_item_fields():
    items = [{"type": "text", "text": json.dumps({"hash": HASH}), "hash": OTHER}]
    assert extract_transaction_hash(items) == HASH


def test_first_array_item_wins():
    items = [{"hash": HASH}, {"hash": OTHER}]
    assert extract_transaction_hash(items) == HASH


def test_idempotent():
    once = extract_transaction_hash({"hash": HASH})
    assert extract_transaction_hash(once) == once


@pytest.mark.parametrize(
    "payload",
    [
        None,
        42,
        "",
        "no receipt",
        {"hash": "not-a-hash"},
        {"hash": HASH[:-1]},
        {"id": HASH},
        [],
        "Error executing tool: connection refused",
    ],
)
def test_not_found(payload):
    assert extract_transaction_hash(payload) == NO_HASH
    assert find_transaction_hash(payload) is None


def test_na_is_not_reinterpreted():
    assert extract_transaction_hash(NO_HASH) == NO_HASH
