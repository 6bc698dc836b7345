from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Transaction


class LedgerEntry(Protocol):
    credit_cents: int
    debit_cents: int


def fold_balance(initial_balance: int, transactions: Iterable[LedgerEntry]) -> int:
    """Replay transactions over an initial balance.

    A transaction with a positive credit adds it; any other transaction
    subtracts its debit. Credit and debit are expected to be mutually
    exclusive, which makes the result independent of order.
    """
    balance = initial_balance
    for txn in transactions:
        if txn.credit_cents > 0:
            balance += txn.credit_cents
        else:
            balance -= txn.debit_cents
    return balance


def wallet_transactions(session: Session, wallet_id: int) -> list[Transaction]:
    stmt = (
        select(Transaction)
        .where(Transaction.from_wallet_id == wallet_id)
        .order_by(Transaction.occurred_at, Transaction.id)
    )
    return list(session.scalars(stmt))


def recalculate_wallet_balance(
    session: Session, wallet_id: int, initial_balance: int
) -> int:
    return fold_balance(initial_balance, wallet_transactions(session, wallet_id))
