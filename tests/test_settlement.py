from settlement import SettlementStatus, settle


def test_no_payments_is_pending() -> None:
    result = settle(10_000, [])

    assert result.status == SettlementStatus.pending
    assert result.remaining_cents == 10_000
    assert result.is_open


def test_partial_then_full_payment() -> None:
    partial = settle(10_000, [4_000])
    full = settle(10_000, [4_000, 6_000])

    assert partial.status == SettlementStatus.partially_paid
    assert partial.paid_cents == 4_000
    assert partial.remaining_cents == 6_000
    assert full.status == SettlementStatus.paid
    assert full.remaining_cents == 0
    assert not full.is_open


def test_overpayment_never_goes_negative() -> None:
    result = settle(10_000, [12_000])

    assert result.status == SettlementStatus.paid
    assert result.remaining_cents == 0
