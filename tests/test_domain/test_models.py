"""Tests for domain records and timestamp normalisation."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from arbitrated_escrow.domain.enums import TxStatus
from arbitrated_escrow.domain.models import TransactionRecord, parse_timestamp

_MOMENT = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            _MOMENT,
            _MOMENT.replace(tzinfo=None),
            "2024-05-01T12:00:00+00:00",
            _MOMENT.timestamp(),
            int(_MOMENT.timestamp() * 1000),
            "2024-05-01T12:00:00Z",
        ],
    )
    def test_all_shapes_agree(self, value) -> None:
        assert parse_timestamp(value) == _MOMENT

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            "not a date",
            {"seconds": 1},
            1e20,
            10**30,
            float("inf"),
            float("nan"),
            "inf",
            "-1e25",
        ],
    )
    def test_unusable_values(self, value) -> None:
        assert parse_timestamp(value) is None


class TestTransactionRecord:
    def test_document_round_trip_keeps_fields(self, make_record) -> None:
        record = make_record(TxStatus.PAYMENT_RECEIVED, payment_sent=True, created_at=_MOMENT)
        document = record.to_document()
        assert document["participants"] == ["u-alice", "u-bob"]
        assert document["amount"] == "0.5"

        restored = TransactionRecord.from_document(record.id, document, version=4)
        assert restored.amount == Decimal("0.5")
        assert restored.payment_sent is True
        assert restored.created_at == _MOMENT
        assert restored.version == 4

    def test_missing_created_at_falls_back_to_store_time(self, make_record) -> None:
        document = make_record().to_document()
        document["created_at"] = None
        restored = TransactionRecord.from_document("TX0001", document, 1, stored_at=_MOMENT)
        assert restored.created_at == _MOMENT

    def test_party_helpers(self, make_record) -> None:
        record = make_record()
        assert record.seller_uid == "u-alice"
        assert record.buyer_uid == "u-bob"
        assert record.counterparty_of("u-bob") == "u-alice"
        assert not record.is_participant("u-admin")
