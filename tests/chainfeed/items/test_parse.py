"""Tests for parsing node payloads into typed notifications."""

from __future__ import annotations

import pytest

from chainfeed.items import (
    ParseError,
    RawUncle,
    RawWorkshare,
    parse_block,
    parse_side_items,
    parse_subscription_message,
)
from tests.chainfeed.helpers import block_payload, make_hash


class TestParseBlock:
    """Tests for block results from polls and point lookups."""

    def test_parses_header_fields(self) -> None:
        """Zone parent, height, order and header parents are extracted."""
        raw = parse_block(
            block_payload(
                make_hash(5),
                make_hash(4),
                number=26,
                order=0,
                prime_parent=make_hash(1),
                region_parent=make_hash(2),
            )
        )

        assert raw.hash == make_hash(5)
        assert raw.zone_parent_hash == make_hash(4)
        assert raw.number_hex == "0x1a"
        assert raw.order_hex == "0x0"
        assert raw.prime_parent_hash == make_hash(1)
        assert raw.region_parent_hash == make_hash(2)

    def test_missing_header_leaves_level_parents_empty(self) -> None:
        """Without a header block, prime and region parents are None."""
        raw = parse_block(block_payload(make_hash(5), make_hash(4), number=1))

        assert raw.prime_parent_hash is None
        assert raw.region_parent_hash is None
        assert raw.parent_hashes() == [make_hash(4)]

    def test_side_items_tagged_with_including_block(self) -> None:
        """Uncles and workshares from a block point back to it."""
        raw = parse_block(
            block_payload(
                make_hash(5),
                make_hash(4),
                number=3,
                uncles=[{"hash": make_hash(10), "parentHash": make_hash(3), "number": "0x2"}],
                workshares=[{"hash": make_hash(11), "parentHash": make_hash(4)}],
            )
        )

        assert [u.hash for u in raw.uncles] == [make_hash(10)]
        assert raw.uncles[0].including_block_hash == make_hash(5)
        assert raw.workshares[0].including_block_hash == make_hash(5)
        assert raw.workshares[0].number_hex is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"woHeader": {"parentHash": make_hash(1)}},
            {"hash": make_hash(2)},
            {"hash": make_hash(2), "woHeader": "not-an-object"},
            ["not", "an", "object"],
            None,
        ],
    )
    def test_malformed_block_rejected(self, payload: object) -> None:
        """A result without hash or woHeader is a parse failure."""
        with pytest.raises(ParseError):
            parse_block(payload)

    def test_non_hex_number_rejected(self) -> None:
        """A present but non-hex height makes the block malformed."""
        payload = block_payload(make_hash(5), make_hash(4))
        payload["woHeader"]["number"] = "0xnope"

        with pytest.raises(ParseError):
            parse_block(payload)

    def test_non_hex_order_rejected(self) -> None:
        """A present but non-hex order makes the block malformed."""
        payload = block_payload(make_hash(5), make_hash(4), number=1)
        payload["order"] = "zone"

        with pytest.raises(ParseError):
            parse_block(payload)

    def test_invalid_hash_rejected(self) -> None:
        """Hashes must be 0x-prefixed hex."""
        with pytest.raises(ParseError):
            parse_block(block_payload("not-a-hash", make_hash(4)))


class TestParseSideItems:
    """Tests for uncle and workshare lists."""

    def test_malformed_entry_dropped_siblings_kept(self) -> None:
        """One bad uncle does not take its siblings down with it."""
        parsed = parse_side_items(
            RawUncle,
            [
                {"hash": make_hash(1), "parentHash": make_hash(0x100)},
                {"parentHash": make_hash(0x100)},
                "garbage",
                {"hash": make_hash(2), "parentHash": make_hash(0x100), "number": "0xq"},
                {"hash": make_hash(3), "parentHash": make_hash(0x100), "number": "0x7"},
            ],
            make_hash(9),
        )

        assert [item.hash for item in parsed] == [make_hash(1), make_hash(3)]
        assert all(isinstance(item, RawUncle) for item in parsed)

    def test_absent_or_non_list_field_is_empty(self) -> None:
        """Missing and non-list fields yield nothing."""
        assert parse_side_items(RawWorkshare, None, None) == []
        assert parse_side_items(RawWorkshare, {"hash": make_hash(1)}, None) == []


class TestParseSubscriptionMessage:
    """Tests for pushed WebSocket messages."""

    @staticmethod
    def _message(result: object) -> dict[str, object]:
        return {"jsonrpc": "2.0", "method": "quai_subscription", "params": {"result": result}}

    def test_parses_workshare(self) -> None:
        """A complete workshare event parses with no including block."""
        workshare = parse_subscription_message(
            self._message(
                {
                    "type": "workshare",
                    "hash": make_hash(7),
                    "parentHash": make_hash(6),
                    "number": "0x10",
                }
            )
        )

        assert isinstance(workshare, RawWorkshare)
        assert workshare.hash == make_hash(7)
        assert workshare.parent_hash == make_hash(6)
        assert workshare.number_hex == "0x10"
        assert workshare.including_block_hash is None

    @pytest.mark.parametrize(
        "message",
        [
            {"jsonrpc": "2.0", "id": 2, "result": "0xsubscription"},
            {"method": "eth_subscription", "params": {"result": {"type": "workshare"}}},
            {"method": "quai_subscription", "params": {"result": "0x1"}},
            {"method": "quai_subscription"},
            "text",
        ],
    )
    def test_non_workshare_messages_ignored(self, message: object) -> None:
        """Acknowledgements and unrelated notifications yield None."""
        assert parse_subscription_message(message) is None

    def test_incomplete_workshare_ignored(self) -> None:
        """A workshare event must carry hash, parentHash and number."""
        message = self._message(
            {"type": "workshare", "hash": make_hash(7), "parentHash": make_hash(6)}
        )

        assert parse_subscription_message(message) is None

    def test_other_result_type_ignored(self) -> None:
        """Only the workshare discriminator is accepted."""
        message = self._message(
            {"type": "block", "hash": make_hash(7), "parentHash": make_hash(6), "number": "0x1"}
        )

        assert parse_subscription_message(message) is None

    def test_invalid_values_raise(self) -> None:
        """A workshare event with an invalid hash is a parse failure."""
        message = self._message(
            {"type": "workshare", "hash": "bogus", "parentHash": make_hash(6), "number": "0x1"}
        )

        with pytest.raises(ParseError):
            parse_subscription_message(message)
