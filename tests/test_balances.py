from dataclasses import dataclass
from datetime import datetime
from itertools import permutations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from balances import fold_balance, recalculate_wallet_balance
from database import Base
from models import Transaction, User, Wallet


@dataclass
class Entry:
    credit_cents: int = 0
    debit_cents: int = 0


def test_credit_then_debit_example() -> None:
    entries = [Entry(credit_cents=50), Entry(debit_cents=30)]
    assert fold_balance(100, entries) == 120


def test_empty_transaction_list_keeps_initial_balance() -> None:
    assert fold_balance(100, []) == 100
    assert fold_balance(-2_500, []) == -2_500


def test_result_is_sum_of_credits_minus_debits_in_any_order() -> None:
    entries = [
        Entry(credit_cents=1_999),
        Entry(debit_cents=450),
        Entry(credit_cents=10),
        Entry(debit_cents=12_000),
    ]
    expected = 5_000 + (1_999 + 10) - (450 + 12_000)
    for ordering in permutations(entries):
        assert fold_balance(5_000, ordering) == expected


def test_cent_amounts_accumulate_exactly() -> None:
    # 0.10 ten times and 0.33 three times; float euros would drift here
    entries = [Entry(credit_cents=10)] * 10 + [Entry(debit_cents=33)] * 3
    assert fold_balance(0, entries) == 1
    assert fold_balance(0, list(reversed(entries))) == 1


def test_positive_credit_wins_over_debit_on_the_same_entry() -> None:
    assert fold_balance(0, [Entry(credit_cents=10, debit_cents=5)]) == 10


def test_recalculate_only_folds_the_wallets_own_transactions() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = User(email="a@example.com", password_hash="x")
        session.add(user)
        session.flush()
        main = Wallet(user_id=user.id, name="Main")
        savings = Wallet(user_id=user.id, name="Savings")
        session.add_all([main, savings])
        session.flush()
        session.add_all(
            [
                Transaction(
                    user_id=user.id,
                    from_wallet_id=main.id,
                    credit_cents=5_000,
                    debit_cents=0,
                    occurred_at=datetime(2025, 1, 1, 9, 0),
                ),
                Transaction(
                    user_id=user.id,
                    from_wallet_id=main.id,
                    credit_cents=0,
                    debit_cents=1_250,
                    occurred_at=datetime(2025, 1, 2, 9, 0),
                ),
                Transaction(
                    user_id=user.id,
                    from_wallet_id=savings.id,
                    credit_cents=99_999,
                    debit_cents=0,
                    occurred_at=datetime(2025, 1, 3, 9, 0),
                ),
            ]
        )
        session.commit()

        assert recalculate_wallet_balance(session, main.id, 10_000) == 13_750
        assert recalculate_wallet_balance(session, savings.id, 0) == 99_999
        assert recalculate_wallet_balance(session, 12345, 700) == 700
