from datetime import datetime

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import DuplicateName, NotFound
from models import Transaction, TransactionType, User
from schemas import CategoryIn, TransactionIn, WalletIn, WalletUpdateIn
from services import CategoryService, TransactionService, WalletService


def make_user(session: Session, email: str) -> User:
    user = User(email=email, password_hash="x")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def test_new_wallet_starts_at_initial_balance() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallet = WalletService(session, user.id).create(
            WalletIn(name="Checking", initial_balance_cents=25_000)
        )

        assert wallet.initial_balance_cents == 25_000
        assert wallet.current_balance_cents == 25_000


def test_wallet_names_are_unique_per_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        WalletService(session, alice.id).create(WalletIn(name="Cash"))

        with pytest.raises(DuplicateName):
            WalletService(session, alice.id).create(WalletIn(name="cash"))
        WalletService(session, bob.id).create(WalletIn(name="Cash"))


def test_transactions_keep_cached_balance_current() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallets = WalletService(session, user.id)
        txns = TransactionService(session, user.id)
        wallet = wallets.create(WalletIn(name="Checking", initial_balance_cents=10_000))

        salary = txns.create(
            TransactionIn(
                from_wallet_id=wallet.id,
                credit_cents=5_000,
                occurred_at=datetime(2025, 1, 1, 9, 0),
            )
        )
        txns.create(
            TransactionIn(
                from_wallet_id=wallet.id,
                debit_cents=3_000,
                description="Groceries",
                occurred_at=datetime(2025, 1, 2, 18, 0),
            )
        )
        assert wallets.get(wallet.id).current_balance_cents == 12_000

        txns.delete(salary.id)
        assert wallets.get(wallet.id).current_balance_cents == 7_000


def test_changing_initial_balance_recalculates_current_balance() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallets = WalletService(session, user.id)
        wallet = wallets.create(WalletIn(name="Checking", initial_balance_cents=100))
        TransactionService(session, user.id).create(
            TransactionIn(from_wallet_id=wallet.id, debit_cents=250)
        )

        updated = wallets.update(wallet.id, WalletUpdateIn(initial_balance_cents=1_000))
        assert updated.current_balance_cents == 750

        renamed = wallets.update(wallet.id, WalletUpdateIn(name="Main"))
        assert renamed.name == "Main"
        assert renamed.current_balance_cents == 750


def test_balance_rebuilds_a_stale_cache() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallets = WalletService(session, user.id)
        wallet = wallets.create(WalletIn(name="Checking", initial_balance_cents=0))
        session.add(
            Transaction(
                user_id=user.id,
                from_wallet_id=wallet.id,
                credit_cents=4_200,
                debit_cents=0,
                occurred_at=datetime(2025, 3, 1, 8, 0),
            )
        )
        session.commit()

        assert wallets.balance(wallet.id).current_balance_cents == 4_200


def test_list_for_wallet_is_in_occurrence_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallet = WalletService(session, user.id).create(WalletIn(name="Checking"))
        txns = TransactionService(session, user.id)
        for day, amount in [(3, 300), (1, 100), (2, 200)]:
            txns.create(
                TransactionIn(
                    from_wallet_id=wallet.id,
                    credit_cents=amount,
                    occurred_at=datetime(2025, 1, day, 12, 0),
                )
            )

        assert [t.credit_cents for t in txns.list_for_wallet(wallet.id)] == [
            100,
            200,
            300,
        ]


def test_transaction_requires_own_wallet_and_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        alice_wallet = WalletService(session, alice.id).create(WalletIn(name="Cash"))
        bob_wallet = WalletService(session, bob.id).create(WalletIn(name="Cash"))
        alice_food = CategoryService(session, alice.id).create(
            CategoryIn(name="Food", transaction_type=TransactionType.expense)
        )

        bob_txns = TransactionService(session, bob.id)
        with pytest.raises(NotFound):
            bob_txns.create(TransactionIn(from_wallet_id=alice_wallet.id, debit_cents=1))
        with pytest.raises(NotFound):
            bob_txns.create(
                TransactionIn(
                    from_wallet_id=bob_wallet.id,
                    category_id=alice_food.id,
                    debit_cents=1,
                )
            )
        assert session.execute(select(func.count(Transaction.id))).scalar_one() == 0


def test_transactions_of_other_users_are_not_found() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice = make_user(session, "alice@example.com")
        bob = make_user(session, "bob@example.com")
        wallet = WalletService(session, alice.id).create(WalletIn(name="Cash"))
        txn = TransactionService(session, alice.id).create(
            TransactionIn(from_wallet_id=wallet.id, credit_cents=10)
        )

        with pytest.raises(NotFound):
            TransactionService(session, bob.id).get(txn.id)
        with pytest.raises(NotFound):
            TransactionService(session, bob.id).delete(txn.id)
        with pytest.raises(NotFound):
            WalletService(session, bob.id).get(wallet.id)


def test_deleting_wallet_removes_its_transactions() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallets = WalletService(session, user.id)
        wallet = wallets.create(WalletIn(name="Cash"))
        TransactionService(session, user.id).create(
            TransactionIn(from_wallet_id=wallet.id, credit_cents=10)
        )

        wallets.delete(wallet.id)

        assert wallets.list_all() == []
        assert session.execute(select(func.count(Transaction.id))).scalar_one() == 0


@pytest.mark.parametrize(
    "credit, debit",
    [(0, 0), (100, 50)],
)
def test_transaction_input_needs_exactly_one_side(credit: int, debit: int) -> None:
    with pytest.raises(ValidationError):
        TransactionIn(from_wallet_id=1, credit_cents=credit, debit_cents=debit)


def test_transaction_input_rejects_negative_amounts() -> None:
    with pytest.raises(ValidationError):
        TransactionIn(from_wallet_id=1, credit_cents=-5)


def test_duplicate_non_ascii_wallet_name_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session, "a@example.com")
        wallets = WalletService(session, user.id)
        wallets.create(WalletIn(name="ÉPARGNE"))

        with pytest.raises(DuplicateName):
            wallets.create(WalletIn(name="Épargne"))
        assert len(wallets.list_all()) == 1


def test_blank_wallet_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        WalletIn(name="   ")
    with pytest.raises(ValidationError):
        WalletUpdateIn(name="  ")
    assert WalletUpdateIn(name=" Main ").name == "Main"
    assert WalletUpdateIn().name is None
