"""
Tests for ledger construction, repair and lookups.
"""

from decimal import Decimal

from finvault.ledger import accounts_in_ledger, create_ledger, normalize_ledger, resolve_account_ref
from finvault.ledger.model import (
    account_type,
    has_history,
    linked_entries,
    resolve_sub_account_id,
    sub_accounts_in_ledger,
)
from finvault.models.ledger import (
    Account,
    AccountTransaction,
    Categories,
    CategoryInfo,
    CategoryMeta,
    Direction,
    DocumentSettings,
    EntryKind,
    Group,
    GroupType,
    SubAccount,
    Transaction,
    VaultDocument,
)

from helpers import build_document


class TestCreateLedger:
    """Tests for ledger defaults."""

    def test_defaults(self):
        ledger = create_ledger()
        assert ledger.name == "Personal"
        assert [g.id for g in ledger.groups] == ["group-debit", "group-credit", "group-invest"]
        assert ledger.transactions == []
        assert ledger.account_transactions == []
        assert "Salary" in ledger.categories.income

    def test_accounts_get_groups_and_ledger_ids(self):
        ledger = create_ledger(
            "Business",
            ledger_id="biz",
            accounts=[
                Account(id="a", name="Till"),
                Account.model_validate({"id": "b", "name": "Card", "groupType": "credit"}),
                Account(id="c", name="Plot", account_type=GroupType.ASSET),
            ],
        )
        by_id = {a.id: a for a in ledger.accounts}
        assert by_id["a"].group_id == "group-debit"
        assert by_id["b"].group_id == "group-credit"
        assert by_id["c"].group_id == "group-invest"
        assert all(a.ledger_id == "biz" for a in ledger.accounts)

    def test_custom_groups_are_kept(self):
        custom = [Group(id="g1", name="Mine", type=GroupType.CREDIT)]
        ledger = create_ledger(groups=custom, accounts=[Account(id="a", name="x")])
        assert [g.id for g in ledger.groups] == ["g1"]
        assert ledger.accounts[0].group_id == "g1"

    def test_given_categories_and_budgets_are_kept(self):
        """Already-built category models survive construction."""
        ledger = create_ledger(
            categories=Categories(expense=["Rent"], income=["Salary"]),
            category_meta=CategoryMeta(expense={"Rent": CategoryInfo(budget=Decimal("900"))}),
        )
        assert ledger.categories.expense == ["Rent"]
        assert ledger.categories.income == ["Salary"]
        assert ledger.category_meta.expense["Rent"].budget == Decimal("900")

    def test_given_settings_are_kept(self):
        document = VaultDocument(settings=DocumentSettings(pin_lock_enabled=True))
        assert document.settings.pin_lock_enabled is True


class TestNormalizeLedger:
    """Tests for repairing stored ledgers."""

    def test_partial_ledger_is_completed(self):
        ledger = normalize_ledger({"id": "l1", "name": ""})
        assert ledger.name == "Personal"
        assert len(ledger.groups) == 3

    def test_idempotent(self):
        once = normalize_ledger({
            "id": "l1",
            "txns": [{"id": "t1", "amount": 5}],
            "accounts": [{"id": "a", "name": "Card", "type": "credit", "subAccounts": [{"id": "s"}]}],
        })
        twice = normalize_ledger(once.to_json_dict())
        assert twice.to_json_dict() == once.to_json_dict()

    def test_sub_accounts_inherit_ledger_id(self):
        ledger = normalize_ledger({
            "id": "l1",
            "accounts": [{"id": "a", "subAccounts": [{"id": "s1"}, {"id": "s2", "ledgerId": "l2"}]}],
        })
        subs = ledger.accounts[0].sub_accounts
        assert [s.ledger_id for s in subs] == ["l1", "l2"]

    def test_non_dict_gives_fresh_ledger(self):
        assert normalize_ledger("nonsense").name == "Personal"

    def test_input_ledger_is_not_mutated(self):
        ledger = create_ledger(accounts=[Account(id="a", name="x")])
        ledger.accounts[0].group_id = None
        normalize_ledger(ledger)
        assert ledger.accounts[0].group_id is None


class TestLookups:
    """Tests for resolving accounts and entries."""

    def test_account_type_precedence(self):
        document = build_document()
        ledger = document.active_ledger
        assert account_type(ledger.find_account("cash"), ledger.groups) == GroupType.DEBIT
        assert account_type(ledger.find_account("card"), ledger.groups) == GroupType.CREDIT
        assert account_type(ledger.find_account("land"), ledger.groups) == GroupType.ASSET

    def test_resolve_by_id_and_name(self):
        document = build_document()
        assert resolve_account_ref(document, "bank")[1].id == "bank"
        assert resolve_account_ref(document, "Card")[1].id == "card"
        assert resolve_account_ref(document, "Nowhere") is None
        assert resolve_account_ref(document, None) is None

    def test_shared_account_visible_in_other_ledger(self):
        document = build_document()
        other = create_ledger("Business", ledger_id="ledger-2")
        document.ledgers.append(other)
        bank = document.active_ledger.find_account("bank")
        bank.sub_accounts[1].ledger_id = "ledger-2"

        visible = [a.id for a in accounts_in_ledger(document, "ledger-2")]
        assert visible == ["bank"]
        assert [s.id for s in sub_accounts_in_ledger(bank, "ledger-2")] == ["current"]

    def test_archived_accounts_can_be_hidden(self):
        document = build_document()
        document.active_ledger.find_account("card").archived = True
        ids = [a.id for a in accounts_in_ledger(document, include_archived=False)]
        assert "card" not in ids

    def test_default_sub_account(self):
        bank = build_document().active_ledger.find_account("bank")
        assert resolve_sub_account_id(bank, "current") == "current"
        assert resolve_sub_account_id(bank, "missing") == "savings"
        assert resolve_sub_account_id(Account(id="x"), "anything") is None

    def test_linked_entries_by_link_id_and_suffix(self):
        document = build_document()
        ledger = document.active_ledger
        ledger.account_transactions = [
            AccountTransaction(id="p1-out", account_id="cash", kind=EntryKind.TRANSFER,
                               direction=Direction.OUT, amount=Decimal(5)),
            AccountTransaction(id="p1-in", account_id="bank", kind=EntryKind.TRANSFER,
                               amount=Decimal(5)),
            AccountTransaction(id="buy", account_id="land", kind=EntryKind.PURCHASE,
                               amount=Decimal(9), link_id="L"),
            AccountTransaction(id="fund", account_id="cash", kind=EntryKind.TRANSFER,
                               direction=Direction.OUT, amount=Decimal(9), link_id="L"),
        ]
        legs = linked_entries(document, ledger.find_entry("p1-out"))
        assert [e.id for _, e in legs] == ["p1-in"]
        legs = linked_entries(document, ledger.find_entry("buy"))
        assert [e.id for _, e in legs] == ["fund"]

    def test_history(self):
        document = build_document()
        assert not has_history(document, "cash")
        document.active_ledger.transactions.append(Transaction(id="t", account_id="cash"))
        assert has_history(document, "cash")

    def test_sub_account_defaults(self):
        sub = SubAccount.model_validate({"id": "", "balance": ""})
        assert sub.id
        assert sub.balance == Decimal(0)
        assert VaultDocument().active_ledger.name == "Personal"
