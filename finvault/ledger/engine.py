"""
Balance Engine

Turns a validated operation into a new vault document.

DESIGN DECISION: Immutable updates. apply() deep-copies the document, edits
the copy and returns it; the caller's document is never touched. Balances
are caches, so every edit or delete first reverts the old delta(s) of the
entry and of its linked legs, then applies the new ones. A stored amount is
never simply overwritten.

Failure semantics:
- An unresolvable account on a single-leg operation is not an error: the
  document comes back unchanged with a notice.
- On a multi-leg operation (transfer, credit routed to an account, asset
  purchase with a funding account, sale with a proceeds account) it raises
  AccountNotFound before any delta is applied. The same holds for a named
  sub-account that does not exist; only an omitted one falls back to the
  first sub-account.
- Operations with error-level validation issues raise OperationRejected.
"""

from datetime import date
from typing import Callable, Optional

import structlog

from finvault.ledger.assets import calculate_asset_metrics
from finvault.ledger.balances import apply_account_delta
from finvault.ledger.model import (
    AccountNotFound,
    EntryNotFound,
    OperationRejected,
    create_ledger,
    entries_for_account,
    has_history,
    linked_entries,
    locate_account,
    locate_entry,
    locate_transaction,
    normalize_accounts_with_groups,
    resolve_account_ref,
    resolve_sub_account_id,
)
from finvault.models.ledger import (
    Account,
    AccountTransaction,
    CategoryInfo,
    Direction,
    EntryKind,
    Ledger,
    ReimbursementRef,
    SubAccount,
    Transaction,
    TransactionType,
    VaultDocument,
    new_id,
)
from finvault.models.operations import (
    AddAccountEntry,
    AddCredit,
    AddLedger,
    AddReimbursement,
    AddSubAccount,
    AddTransaction,
    AssetPurchase,
    AssetSale,
    AssetValuation,
    DeleteAccount,
    DeleteAccountEntry,
    DeleteTransaction,
    MutationResult,
    SelectLedger,
    SetCategoryBudget,
    Transfer,
    UpdateAccountEntry,
    UpdateGroups,
    UpdateLedger,
    UpdateSettings,
    UpdateTransaction,
    UpsertAccount,
)
from finvault.validation.validator import OperationValidator


logger = structlog.get_logger(__name__)

REIMBURSEMENT_CATEGORY = "Reimbursement"


def _opposite(direction: Direction) -> Direction:
    return Direction.OUT if direction == Direction.IN else Direction.IN


def _txn_direction(txn_type: TransactionType) -> Direction:
    return Direction.IN if txn_type == TransactionType.INCOME else Direction.OUT


class _Mutation:
    """Working state of one apply() call: the document copy plus what changed."""

    def __init__(self, document: VaultDocument, today: date):
        self.document = document
        self.today = today
        self.notices: list[str] = []
        self.entry_ids: list[str] = []

    def result(self) -> MutationResult:
        return MutationResult(
            document=self.document,
            notices=self.notices,
            entry_ids=self.entry_ids,
        )

    # ----- balances -----

    def book(self, entry: AccountTransaction, sign: int = 1) -> None:
        """Apply (sign=1) or revert (sign=-1) one entry's delta."""
        found = locate_account(self.document, entry.account_id)
        if found is None:
            # orphaned entry: nothing to move
            return
        apply_account_delta(found[1], entry.sub_account_id, entry.delta * sign)

    def add_entry(self, entry: AccountTransaction) -> AccountTransaction:
        """Book a new entry and store it in the ledger owning its account."""
        found = locate_account(self.document, entry.account_id)
        owner = found[0] if found else self.document.active_ledger
        self.book(entry)
        owner.account_transactions.append(entry)
        self.entry_ids.append(entry.id)
        return entry

    def remove_entry(self, entry_id: str) -> None:
        for ledger in self.document.ledgers:
            ledger.account_transactions = [
                e for e in ledger.account_transactions if e.id != entry_id
            ]

    def replace_entry(self, updated: AccountTransaction) -> None:
        """Store an edited entry, moving it if its account changed ledgers."""
        target = locate_account(self.document, updated.account_id)
        target_ledger = target[0] if target else None
        for ledger in self.document.ledgers:
            for index, entry in enumerate(ledger.account_transactions):
                if entry.id != updated.id:
                    continue
                if target_ledger is None or target_ledger is ledger:
                    ledger.account_transactions[index] = updated
                else:
                    del ledger.account_transactions[index]
                    target_ledger.account_transactions.append(updated)
                if updated.id not in self.entry_ids:
                    self.entry_ids.append(updated.id)
                return

    # ----- resolution -----

    def resolve(self, ref: Optional[str]) -> Optional[tuple[Ledger, Account]]:
        return resolve_account_ref(self.document, ref, self.document.active_ledger_id)

    def require(self, ref: Optional[str], role: str) -> tuple[Ledger, Account]:
        found = self.resolve(ref)
        if found is None:
            raise AccountNotFound(f"{role} account not found: {ref}")
        return found

    def require_sub(self, account: Account, requested: Optional[str], role: str) -> Optional[str]:
        """Sub-account for one leg of a multi-leg operation; a named one must exist."""
        if requested and account.find_sub_account(requested) is None:
            raise AccountNotFound(f"{role} sub-account not found: {requested}")
        return resolve_sub_account_id(account, requested)


class BalanceEngine:
    """
    Applies ledger operations to vault documents.

    Usage:
        engine = BalanceEngine()
        result = engine.apply(document, Transfer(from_account_id=a, to_account_id=b, amount=100))
        document = result.document
    """

    def __init__(self, validator: Optional[OperationValidator] = None):
        self._validator = validator or OperationValidator()
        self._handlers: dict[str, Callable] = {
            "add_transaction": self._add_transaction,
            "update_transaction": self._update_transaction,
            "delete_transaction": self._delete_transaction,
            "add_reimbursement": self._add_reimbursement,
            "add_account_entry": self._add_account_entry,
            "transfer": self._transfer,
            "add_credit": self._add_credit,
            "update_account_entry": self._update_account_entry,
            "delete_account_entry": self._delete_account_entry,
            "asset_purchase": self._asset_purchase,
            "asset_sale": self._asset_sale,
            "asset_valuation": self._asset_valuation,
            "add_ledger": self._add_ledger,
            "select_ledger": self._select_ledger,
            "update_ledger": self._update_ledger,
            "set_category_budget": self._set_category_budget,
            "upsert_account": self._upsert_account,
            "add_sub_account": self._add_sub_account,
            "delete_account": self._delete_account,
            "update_groups": self._update_groups,
            "update_settings": self._update_settings,
        }

    def apply(
        self,
        document: VaultDocument,
        operation,
        as_of: Optional[date] = None,
    ) -> MutationResult:
        """
        Validate and apply one operation.

        Args:
            document: Current document (left untouched)
            operation: Any member of LedgerOperation
            as_of: "Today" for default dates

        Returns:
            MutationResult with the new document

        Raises:
            OperationRejected: Validation found errors
            AccountNotFound: A multi-leg operation could not resolve an account
            EntryNotFound: The entry or transaction to edit does not exist
        """
        validation = self._validator.validate(document, operation)
        if validation.has_errors:
            logger.info(
                "operation_rejected",
                operation=operation.op,
                reason=validation.summary(),
            )
            raise OperationRejected(validation)

        handler = self._handlers[operation.op]
        mutation = _Mutation(document.model_copy(deep=True), as_of or date.today())
        handler(mutation, operation)

        if mutation.notices:
            logger.info("operation_notice", operation=operation.op, notices=mutation.notices)
        return mutation.result()

    # =========================================================================
    # CATEGORY TRANSACTIONS
    # =========================================================================

    def _book_shadow(self, m: _Mutation, txn: Transaction, requested_sub: Optional[str]) -> None:
        """Create the `txn-<id>` entry carrying a category transaction's balance effect."""
        if not txn.account_id:
            return
        found = m.resolve(txn.account_id)
        if found is None:
            m.notices.append("Account not found for this transaction.")
            return
        account = found[1]
        sub_id = resolve_sub_account_id(account, requested_sub)
        txn.account_id = account.id
        txn.sub_account_id = sub_id
        m.add_entry(AccountTransaction(
            id=txn.shadow_entry_id,
            account_id=account.id,
            sub_account_id=sub_id,
            amount=txn.amount,
            direction=_txn_direction(txn.type),
            kind=EntryKind.TXN,
            note=txn.note or txn.category,
            date=txn.date,
            category=txn.category,
        ))

    def _drop_shadow(self, m: _Mutation, txn: Transaction) -> Optional[AccountTransaction]:
        found = locate_entry(m.document, txn.shadow_entry_id)
        if found is None:
            return None
        entry = found[1]
        m.book(entry, sign=-1)
        m.remove_entry(entry.id)
        return entry

    def _add_transaction(self, m: _Mutation, op: AddTransaction) -> None:
        txn = Transaction(
            type=op.type,
            amount=op.amount,
            category=op.category,
            note=op.note,
            date=op.on or m.today,
            account_id=op.account_id,
        )
        self._book_shadow(m, txn, op.sub_account_id)
        m.document.active_ledger.transactions.append(txn)

    def _update_transaction(self, m: _Mutation, op: UpdateTransaction) -> None:
        found = locate_transaction(m.document, op.transaction_id, m.document.active_ledger_id)
        if found is None:
            raise EntryNotFound(f"Transaction not found: {op.transaction_id}")
        ledger, txn = found
        fields = op.model_fields_set

        old_entry = self._drop_shadow(m, txn)

        if "type" in fields and op.type is not None:
            txn.type = op.type
        if "amount" in fields and op.amount is not None:
            txn.amount = op.amount
        if "category" in fields and op.category is not None:
            txn.category = op.category
        if "note" in fields and op.note is not None:
            txn.note = op.note
        if "on" in fields and op.on is not None:
            txn.date = op.on

        requested_sub = None
        if "account_id" in fields:
            txn.account_id = op.account_id or None
            txn.sub_account_id = None
        elif old_entry is not None:
            requested_sub = old_entry.sub_account_id
        if "sub_account_id" in fields:
            requested_sub = op.sub_account_id
        elif requested_sub is None:
            requested_sub = txn.sub_account_id

        self._book_shadow(m, txn, requested_sub)

        if txn.reimbursement_of:
            original = locate_transaction(m.document, txn.reimbursement_of, ledger.id)
            if original is not None:
                for ref in original[1].reimbursed_by:
                    if ref.txn_id == txn.id:
                        ref.amount = txn.amount

    def _remove_transaction(self, m: _Mutation, txn_id: str) -> None:
        """Delete a category transaction and unhook its reimbursement links."""
        found = locate_transaction(m.document, txn_id, m.document.active_ledger_id)
        if found is None:
            return
        ledger, txn = found
        ledger.transactions = [t for t in ledger.transactions if t.id != txn_id]

        if txn.reimbursement_of:
            original = locate_transaction(m.document, txn.reimbursement_of, ledger.id)
            if original is not None:
                original[1].reimbursed_by = [
                    r for r in original[1].reimbursed_by if r.txn_id != txn.id
                ]
        for ref in txn.reimbursed_by:
            repayment = locate_transaction(m.document, ref.txn_id, ledger.id)
            if repayment is not None:
                repayment[1].reimbursement_of = None

    def _delete_transaction(self, m: _Mutation, op: DeleteTransaction) -> None:
        found = locate_transaction(m.document, op.transaction_id, m.document.active_ledger_id)
        if found is None:
            raise EntryNotFound(f"Transaction not found: {op.transaction_id}")
        self._drop_shadow(m, found[1])
        self._remove_transaction(m, op.transaction_id)

    def _add_reimbursement(self, m: _Mutation, op: AddReimbursement) -> None:
        found = locate_transaction(
            m.document, op.original_transaction_id, m.document.active_ledger_id
        )
        if found is None:
            raise EntryNotFound(f"Original transaction not found: {op.original_transaction_id}")
        ledger, original = found

        repayment = Transaction(
            type=TransactionType.INCOME,
            amount=op.amount,
            category=REIMBURSEMENT_CATEGORY,
            note=f"Reimbursement for: {original.note or original.category or 'Expense'}",
            date=op.on or m.today,
            account_id=op.account_id,
            reimbursement_of=original.id,
        )
        original.reimbursed_by.append(ReimbursementRef(txn_id=repayment.id, amount=op.amount))
        self._book_shadow(m, repayment, op.sub_account_id)
        ledger.transactions.append(repayment)

    # =========================================================================
    # ACCOUNT ENTRIES
    # =========================================================================

    def _add_account_entry(self, m: _Mutation, op: AddAccountEntry) -> None:
        found = m.resolve(op.account_id)
        if found is None:
            m.notices.append(f"Account not found: {op.account_id}")
            return
        account = found[1]
        m.add_entry(AccountTransaction(
            account_id=account.id,
            sub_account_id=resolve_sub_account_id(account, op.sub_account_id),
            amount=op.amount,
            direction=op.direction,
            kind=EntryKind.ADJUST,
            note=op.note,
            date=op.on or m.today,
        ))

    def _transfer(self, m: _Mutation, op: Transfer) -> None:
        # Both legs must resolve before either is booked
        _, source = m.require(op.from_account_id, "Source")
        _, target = m.require(op.to_account_id, "Target")
        source_sub = m.require_sub(source, op.from_sub_account_id, "Source")
        target_sub = m.require_sub(target, op.to_sub_account_id, "Target")

        base = new_id()
        when = op.on or m.today
        m.add_entry(AccountTransaction(
            id=f"{base}-out",
            account_id=source.id,
            sub_account_id=source_sub,
            amount=op.amount,
            direction=Direction.OUT,
            kind=EntryKind.TRANSFER,
            related_account_id=target.id,
            note=op.note,
            date=when,
            link_id=base,
        ))
        m.add_entry(AccountTransaction(
            id=f"{base}-in",
            account_id=target.id,
            sub_account_id=target_sub,
            amount=op.amount,
            direction=Direction.IN,
            kind=EntryKind.TRANSFER,
            related_account_id=source.id,
            note=op.note,
            date=when,
            link_id=base,
        ))

    def _add_credit(self, m: _Mutation, op: AddCredit) -> None:
        if op.credit_to_account_id:
            _, creditor = m.require(op.account_id, "Creditor")
            _, receiver = m.require(op.credit_to_account_id, "Receiving")
        else:
            found = m.resolve(op.account_id)
            if found is None:
                m.notices.append(f"Account not found: {op.account_id}")
                return
            creditor, receiver = found[1], None
        if receiver is not None and receiver.id == creditor.id:
            receiver = None
        if receiver is not None:
            creditor_sub = m.require_sub(creditor, op.sub_account_id, "Creditor")
            receiver_sub = m.require_sub(receiver, op.credit_to_sub_account_id, "Receiving")
        else:
            creditor_sub = resolve_sub_account_id(creditor, op.sub_account_id)

        received = op.receive_date or m.today
        link = new_id() if receiver is not None else None
        m.add_entry(AccountTransaction(
            account_id=creditor.id,
            sub_account_id=creditor_sub,
            amount=op.amount,
            direction=Direction.IN,
            kind=EntryKind.CREDIT,
            related_account_id=receiver.id if receiver else None,
            note=op.note,
            date=received,
            credit_rate=op.credit_rate,
            credit_type=op.credit_type,
            receive_date=received,
            interest_start_date=op.interest_start_date or received,
            link_id=link,
        ))
        if receiver is not None:
            m.add_entry(AccountTransaction(
                account_id=receiver.id,
                sub_account_id=receiver_sub,
                amount=op.amount,
                direction=Direction.IN,
                kind=EntryKind.CREDIT,
                related_account_id=creditor.id,
                note=op.note or f"Credit received from {creditor.name}",
                date=received,
                link_id=link,
            ))

    def _update_account_entry(self, m: _Mutation, op: UpdateAccountEntry) -> None:
        found = locate_entry(m.document, op.entry_id)
        if found is None:
            raise EntryNotFound(f"Entry not found: {op.entry_id}")
        entry = found[1]
        fields = op.model_fields_set

        # A shadow entry is edited through its category transaction
        if entry.kind == EntryKind.TXN and entry.id.startswith("txn-"):
            txn_id = entry.id[len("txn-"):]
            if locate_transaction(m.document, txn_id) is not None:
                self._update_shadowed_transaction(m, op, txn_id)
                return

        legs = [leg for _, leg in linked_entries(m.document, entry)]

        # Resolve the new account before touching any balance
        account = None
        if "account_id" in fields and op.account_id:
            resolved = m.resolve(op.account_id)
            if resolved is None:
                if legs:
                    raise AccountNotFound(f"Account not found: {op.account_id}")
                m.notices.append(f"Account not found: {op.account_id}")
                return
            account = resolved[1]

        # 1. Revert old deltas
        m.book(entry, sign=-1)
        for leg in legs:
            m.book(leg, sign=-1)

        # 2. Build the new entry
        updates: dict = {}
        if account is not None and account.id != entry.account_id:
            updates["account_id"] = account.id
            updates["sub_account_id"] = resolve_sub_account_id(
                account, op.sub_account_id if "sub_account_id" in fields else None
            )
        elif "sub_account_id" in fields:
            current = locate_account(m.document, entry.account_id)
            updates["sub_account_id"] = (
                resolve_sub_account_id(current[1], op.sub_account_id)
                if current else op.sub_account_id
            )
        for name in (
            "amount", "direction", "note", "credit_rate", "credit_type",
            "receive_date", "interest_start_date", "quantity", "unit_price",
        ):
            if name in fields and getattr(op, name) is not None:
                updates[name] = getattr(op, name)
        if "on" in fields and op.on is not None:
            updates["date"] = op.on

        updated = entry.model_copy(update=updates)
        updated = AccountTransaction.model_validate(updated.model_dump())

        # 3. Legs follow amount and date; transfer legs also follow direction
        new_legs = []
        for leg in legs:
            leg_updates: dict = {"amount": updated.amount}
            if "on" in fields and op.on is not None:
                leg_updates["date"] = op.on
            if "note" in fields and op.note:
                leg_updates["note"] = op.note
            if updated.direction != entry.direction and leg.kind == EntryKind.TRANSFER:
                leg_updates["direction"] = _opposite(updated.direction)
            if "account_id" in updates and leg.related_account_id == entry.account_id:
                leg_updates["related_account_id"] = updated.account_id
            new_legs.append(leg.model_copy(update=leg_updates))

        # 4. Apply new deltas
        m.replace_entry(updated)
        m.book(updated)
        for leg in new_legs:
            m.replace_entry(leg)
            m.book(leg)

    def _update_shadowed_transaction(
        self,
        m: _Mutation,
        op: UpdateAccountEntry,
        txn_id: str,
    ) -> None:
        fields = op.model_fields_set
        update: dict = {"transaction_id": txn_id}
        if "amount" in fields:
            update["amount"] = op.amount
        if "note" in fields:
            update["note"] = op.note
        if "on" in fields:
            update["on"] = op.on
        if "account_id" in fields:
            update["account_id"] = op.account_id
        if "sub_account_id" in fields:
            update["sub_account_id"] = op.sub_account_id
        if "direction" in fields and op.direction is not None:
            update["type"] = (
                TransactionType.INCOME if op.direction == Direction.IN
                else TransactionType.EXPENSE
            )
        self._update_transaction(m, UpdateTransaction(**update))

    def _delete_account_entry(self, m: _Mutation, op: DeleteAccountEntry) -> None:
        found = locate_entry(m.document, op.entry_id)
        if found is None:
            raise EntryNotFound(f"Entry not found: {op.entry_id}")
        entry = found[1]
        targets = [entry] + [leg for _, leg in linked_entries(m.document, entry)]

        for target in targets:
            m.book(target, sign=-1)
            m.remove_entry(target.id)
            m.entry_ids.append(target.id)

        # Deleting a shadow entry removes its category transaction too
        for target in targets:
            if target.kind == EntryKind.TXN and target.id.startswith("txn-"):
                self._remove_transaction(m, target.id[len("txn-"):])

    # =========================================================================
    # ASSET EVENTS
    # =========================================================================

    def _asset_purchase(self, m: _Mutation, op: AssetPurchase) -> None:
        if op.funding_account_id:
            _, asset = m.require(op.account_id, "Asset")
            _, funding = m.require(op.funding_account_id, "Funding")
        else:
            found = m.resolve(op.account_id)
            if found is None:
                m.notices.append(f"Account not found: {op.account_id}")
                return
            asset, funding = found[1], None
        if funding is not None:
            asset_sub = m.require_sub(asset, op.sub_account_id, "Asset")
            funding_sub = m.require_sub(funding, op.funding_sub_account_id, "Funding")
        else:
            asset_sub = resolve_sub_account_id(asset, op.sub_account_id)

        when = op.on or m.today
        link = new_id() if funding is not None else None
        m.add_entry(AccountTransaction(
            account_id=asset.id,
            sub_account_id=asset_sub,
            amount=op.amount,
            direction=Direction.IN,
            kind=EntryKind.PURCHASE,
            related_account_id=funding.id if funding else None,
            note=op.note,
            date=when,
            unit=op.unit,
            quantity=op.quantity,
            unit_price=op.unit_price,
            fee=op.fee,
            link_id=link,
        ))
        if funding is not None:
            m.add_entry(AccountTransaction(
                account_id=funding.id,
                sub_account_id=funding_sub,
                amount=op.amount,
                direction=Direction.OUT,
                kind=EntryKind.TRANSFER,
                related_account_id=asset.id,
                note=op.note or f"Purchase of {asset.name}",
                date=when,
                link_id=link,
            ))

    def _asset_sale(self, m: _Mutation, op: AssetSale) -> None:
        """
        Book a sale, and its proceeds when a proceeds account is given.

        Without one the sale is a single OUT entry on the asset: the cash
        received is not recorded anywhere in the ledger.
        """
        if op.proceeds_account_id:
            _, asset = m.require(op.account_id, "Asset")
            _, proceeds = m.require(op.proceeds_account_id, "Proceeds")
        else:
            found = m.resolve(op.account_id)
            if found is None:
                m.notices.append(f"Account not found: {op.account_id}")
                return
            asset, proceeds = found[1], None
        if proceeds is not None:
            asset_sub = m.require_sub(asset, op.sub_account_id, "Asset")
            proceeds_sub = m.require_sub(proceeds, op.proceeds_sub_account_id, "Proceeds")
        else:
            asset_sub = resolve_sub_account_id(asset, op.sub_account_id)

        when = op.on or m.today
        link = new_id() if proceeds is not None else None
        unit = calculate_asset_metrics(entries_for_account(m.document, asset.id)).unit
        m.add_entry(AccountTransaction(
            account_id=asset.id,
            sub_account_id=asset_sub,
            amount=op.amount,
            direction=Direction.OUT,
            kind=EntryKind.SALE,
            related_account_id=proceeds.id if proceeds else None,
            note=op.note,
            date=when,
            unit=unit,
            quantity=op.quantity,
            unit_price=op.unit_price,
            fee=op.fee,
            link_id=link,
        ))
        if proceeds is not None:
            m.add_entry(AccountTransaction(
                account_id=proceeds.id,
                sub_account_id=proceeds_sub,
                amount=op.amount,
                direction=Direction.IN,
                kind=EntryKind.TRANSFER,
                related_account_id=asset.id,
                note=op.note or f"Sale of {asset.name}",
                date=when,
                link_id=link,
            ))

    def _asset_valuation(self, m: _Mutation, op: AssetValuation) -> None:
        found = m.resolve(op.account_id)
        if found is None:
            m.notices.append(f"Account not found: {op.account_id}")
            return
        asset = found[1]
        summary = calculate_asset_metrics(entries_for_account(m.document, asset.id))
        m.add_entry(AccountTransaction(
            account_id=asset.id,
            amount=summary.quantity_held * op.unit_price,
            direction=Direction.IN,
            kind=EntryKind.VALUATION,
            note=op.note or "Valuation",
            date=op.on or m.today,
            unit=summary.unit,
            quantity=summary.quantity_held,
            unit_price=op.unit_price,
        ))

    # =========================================================================
    # LEDGERS AND ACCOUNT STRUCTURE
    # =========================================================================

    def _add_ledger(self, m: _Mutation, op: AddLedger) -> None:
        ledger = create_ledger(op.name)
        m.document.ledgers.append(ledger)
        m.document.active_ledger_id = ledger.id

    def _select_ledger(self, m: _Mutation, op: SelectLedger) -> None:
        if m.document.find_ledger(op.ledger_id) is None:
            m.notices.append(f"Ledger not found: {op.ledger_id}")
            return
        m.document.active_ledger_id = op.ledger_id

    def _update_ledger(self, m: _Mutation, op: UpdateLedger) -> None:
        ledger = m.document.find_ledger(op.ledger_id or m.document.active_ledger_id)
        if ledger is None:
            m.notices.append(f"Ledger not found: {op.ledger_id}")
            return
        if op.name:
            ledger.name = op.name
        if op.categories is not None:
            ledger.categories = op.categories.model_copy(deep=True)
        if op.category_meta is not None:
            ledger.category_meta = op.category_meta.model_copy(deep=True)
        if op.groups:
            ledger.groups = [g.model_copy() for g in op.groups]
            ledger.accounts = normalize_accounts_with_groups(ledger.accounts, ledger.groups)

    def _set_category_budget(self, m: _Mutation, op: SetCategoryBudget) -> None:
        meta = getattr(m.document.active_ledger.category_meta, op.type.value)
        info = meta.get(op.category) or CategoryInfo()
        info.budget = op.budget
        meta[op.category] = info

    def _upsert_account(self, m: _Mutation, op: UpsertAccount) -> None:
        existing = locate_account(m.document, op.account_id)
        if existing is not None:
            ledger, account = existing
            account.name = op.name
            if op.group_id is not None:
                account.group_id = op.group_id
            if op.account_type is not None:
                account.account_type = op.account_type
            if op.ledger_id is not None:
                account.ledger_id = op.ledger_id
            if op.archived is not None:
                account.archived = op.archived
            ledger.accounts = normalize_accounts_with_groups(ledger.accounts, ledger.groups)
            return

        owner = m.document.find_ledger(op.ledger_id) or m.document.active_ledger
        group_id = op.group_id
        if group_id is None and op.account_type is not None:
            group_id = next(
                (g.id for g in owner.groups if g.type == op.account_type), None
            )
        account = Account(
            id=op.account_id or new_id(),
            name=op.name,
            group_id=group_id,
            account_type=op.account_type,
            ledger_id=owner.id,
            archived=bool(op.archived),
        )
        owner.accounts.append(normalize_accounts_with_groups([account], owner.groups)[0])

        if op.opening_balance != 0:
            m.add_entry(AccountTransaction(
                account_id=account.id,
                amount=abs(op.opening_balance),
                direction=Direction.IN if op.opening_balance > 0 else Direction.OUT,
                kind=EntryKind.ADJUST,
                note="Opening balance",
                date=m.today,
            ))

    def _add_sub_account(self, m: _Mutation, op: AddSubAccount) -> None:
        found = m.resolve(op.account_id)
        if found is None:
            m.notices.append(f"Account not found: {op.account_id}")
            return
        account = found[1]
        if not account.sub_accounts and account.balance != 0:
            m.notices.append(
                f"{account.name} now shows the sum of its sub-accounts; "
                "its existing balance stays on the account itself."
            )
        account.sub_accounts.append(SubAccount(
            name=op.name,
            ledger_id=op.ledger_id or account.ledger_id,
        ))

    def _delete_account(self, m: _Mutation, op: DeleteAccount) -> None:
        found = locate_account(m.document, op.account_id)
        if found is None:
            m.notices.append(f"Account not found: {op.account_id}")
            return
        ledger, account = found
        if has_history(m.document, account.id):
            account.archived = True
            m.notices.append(f"{account.name} has transactions and was archived instead.")
        else:
            ledger.accounts = [a for a in ledger.accounts if a.id != account.id]

    def _update_groups(self, m: _Mutation, op: UpdateGroups) -> None:
        ledger = m.document.active_ledger
        ledger.groups = [g.model_copy() for g in op.groups]
        ledger.accounts = normalize_accounts_with_groups(ledger.accounts, ledger.groups)

    def _update_settings(self, m: _Mutation, op: UpdateSettings) -> None:
        if op.pin_lock_enabled is not None:
            m.document.settings.pin_lock_enabled = op.pin_lock_enabled
