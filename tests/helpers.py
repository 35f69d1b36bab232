"""Document builders shared by the test modules."""

from datetime import date
from decimal import Decimal

from finvault.ledger.model import create_ledger
from finvault.models.ledger import Account, GroupType, SubAccount, VaultDocument


TODAY = date(2024, 6, 1)


def build_document() -> VaultDocument:
    """
    One ledger with:
    - Cash (debit, balance 1000)
    - Bank (debit, sub-accounts Savings 500 / Current 200)
    - Card (credit)
    - Land (asset)
    """
    ledger = create_ledger(
        "Personal",
        ledger_id="ledger-1",
        accounts=[
            Account(id="cash", name="Cash", group_id="group-debit", balance=Decimal("1000")),
            Account(
                id="bank",
                name="Bank",
                group_id="group-debit",
                sub_accounts=[
                    SubAccount(id="savings", name="Savings", balance=Decimal("500")),
                    SubAccount(id="current", name="Current", balance=Decimal("200")),
                ],
            ),
            Account(id="card", name="Card", group_id="group-credit"),
            Account(id="land", name="Land", group_id="group-invest", account_type=GroupType.ASSET),
        ],
    )
    return VaultDocument(ledgers=[ledger], active_ledger_id=ledger.id)


def account(document: VaultDocument, account_id: str) -> Account:
    for ledger in document.ledgers:
        found = ledger.find_account(account_id)
        if found is not None:
            return found
    raise KeyError(account_id)


def sub_balance(document: VaultDocument, account_id: str, sub_id: str) -> Decimal:
    return account(document, account_id).find_sub_account(sub_id).balance
