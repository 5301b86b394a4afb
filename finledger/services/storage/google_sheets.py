"""
Google Sheets Storage Implementation

Google Sheets is the remote store behind the ledger:
1. Household members can inspect accounts and bills directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- No transactions: multi-step ledger writes are undone by the
  orchestrator's compensation log, not by the store
- No conditional writes: the balance version check and the write are
  two API calls, so the compare-and-swap window is one round trip
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so a relational
backend can replace it without changing ledger logic.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Union
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finledger.config import get_settings
from finledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finledger.models.ledger import (
    Account,
    BillStatus,
    CreditCard,
    CreditCardBill,
    Transaction,
    TransactionFilter,
    TransactionStatus,
)
from finledger.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CreditCardBillStorageInterface,
    CreditCardStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    VersionConflictError,
)


ACCOUNT_COLUMNS = [
    "id",
    "name",
    "balance",
    "is_default",
    "include_in_total",
    "version",
    "updated_at",
    "opening_balance",
]

TRANSACTION_COLUMNS = [
    "id",
    "name",
    "amount",
    "date",
    "status",
    "account_id",
    "credit_card_bill_id",
    "category_id",
    "transfer_id",
    "series_id",
    "installment_number",
    "total_installments",
    "description",
    "created_at",
    "updated_at",
]

CARD_COLUMNS = [
    "id",
    "name",
    "account_id",
    "closing_day",
    "due_day",
    "credit_limit",
    "is_active",
]

BILL_COLUMNS = [
    "id",
    "credit_card_id",
    "reference_month",
    "closing_date",
    "due_date",
    "total_amount",
    "paid_amount",
    "status",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Lookup misses, uniqueness and version conflicts are answers, not outages
remote_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(
        (NotFoundError, DuplicateError, VersionConflictError)
    ),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _opt_uuid(value: str) -> Optional[UUID]:
    return UUID(value) if value else None


def _opt_str(value: Optional[Any]) -> str:
    return str(value) if value is not None else ""


def _bool(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=5000,
        )

    def get_cards_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.credit_cards_sheet_name, CARD_COLUMNS)

    def get_bills_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.bills_sheet_name, BILL_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _find_row(sheet: gspread.Worksheet, entity_id: UUID) -> tuple[int, list]:
    """Return (1-based row index, row values) for an id in column A."""
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
        if row and row[0] == str(entity_id):
            return idx, row
    raise NotFoundError(f"Row not found: {entity_id}")


def _write_row(sheet: gspread.Worksheet, idx: int, values: list) -> None:
    for col_idx, value in enumerate(values, start=1):
        sheet.update_cell(idx, col_idx, value)


def _scan(sheet: gspread.Worksheet, parse: Callable[[list], Any]) -> list:
    """Parse every data row, skipping blank and malformed rows."""
    parsed = []
    for row in sheet.get_all_values()[1:]:
        if not row or not row[0]:
            continue
        try:
            parsed.append(parse(row))
        except (ValueError, json.JSONDecodeError):
            continue
    return parsed


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """Accounts, one per row. `version` guards balance writes."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_to_row(self, account: Account) -> list:
        return [
            str(account.id),
            account.name,
            str(account.balance),
            str(account.is_default),
            str(account.include_in_total),
            str(account.version),
            account.updated_at.isoformat(),
            str(account.opening_balance),
        ]

    def _row_to_account(self, row: list) -> Account:
        return Account(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            balance=Decimal(_cell(row, 2, "0")),
            is_default=_bool(_cell(row, 3)),
            include_in_total=_bool(_cell(row, 4, "True")),
            version=int(_cell(row, 5, "0")),
            updated_at=datetime.fromisoformat(_cell(row, 6)),
            opening_balance=Decimal(_cell(row, 7, "0")),
        )

    @remote_retry
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            _, row = _find_row(sheet, account_id)
            return self._row_to_account(row)
        except NotFoundError:
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")

    async def list_accounts(self) -> list[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            return _scan(sheet, self._row_to_account)
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def save_account(self, account: Account) -> Account:
        try:
            sheet = self._client.get_accounts_sheet()
            try:
                idx, _ = _find_row(sheet, account.id)
                _write_row(sheet, idx, self._account_to_row(account))
            except NotFoundError:
                sheet.append_row(self._account_to_row(account), value_input_option="RAW")
            return account
        except Exception as e:
            raise StorageError(f"Failed to save account: {e}")

    @remote_retry
    async def set_default_account(self, account_id: UUID) -> None:
        try:
            sheet = self._client.get_accounts_sheet()
            rows = sheet.get_all_values()
            target = str(account_id)
            if not any(row and row[0] == target for row in rows[1:]):
                raise NotFoundError(f"Account not found: {account_id}")

            # Only the is_default column (4) is written, balances are untouched
            for idx, row in enumerate(rows[1:], start=2):
                if not row or not row[0]:
                    continue
                is_default = row[0] == target
                if _bool(_cell(row, 3)) != is_default:
                    sheet.update_cell(idx, 4, str(is_default))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to set default account: {e}")

    @remote_retry
    async def update_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
        expected_version: int,
    ) -> Account:
        """
        Write a new balance if the stored version still matches.

        Sheets has no conditional write, so this is check-then-write, not
        a true compare-and-swap: the version is read and compared, then
        the balance, version and timestamp cells are written. Two writers
        whose read and write interleave can both pass the check and the
        later write wins. The check catches writers that committed before
        this read; it does not serialize concurrent ones.
        """
        try:
            sheet = self._client.get_accounts_sheet()
            idx, row = _find_row(sheet, account_id)
            current = self._row_to_account(row)
            if current.version != expected_version:
                raise VersionConflictError(account_id, expected_version, current.version)

            updated = current.model_copy(update={
                "balance": new_balance,
                "version": current.version + 1,
                "updated_at": datetime.now(timezone.utc),
            })
            # balance, version, updated_at columns
            sheet.update_cell(idx, 3, str(updated.balance))
            sheet.update_cell(idx, 6, str(updated.version))
            sheet.update_cell(idx, 7, updated.updated_at.isoformat())
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update balance: {e}")


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """Transactions, one per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _tx_to_row(self, tx: Transaction) -> list:
        return [
            str(tx.id),
            tx.name,
            str(tx.amount),
            tx.date.isoformat(),
            tx.status.value,
            _opt_str(tx.account_id),
            _opt_str(tx.credit_card_bill_id),
            _opt_str(tx.category_id),
            _opt_str(tx.transfer_id),
            _opt_str(tx.series_id),
            str(tx.installment_number),
            str(tx.total_installments),
            tx.description or "",
            tx.created_at.isoformat(),
            tx.updated_at.isoformat(),
        ]

    def _row_to_tx(self, row: list) -> Transaction:
        return Transaction(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            date=date.fromisoformat(_cell(row, 3)),
            status=TransactionStatus(_cell(row, 4)),
            account_id=_opt_uuid(_cell(row, 5)),
            credit_card_bill_id=_opt_uuid(_cell(row, 6)),
            category_id=_opt_uuid(_cell(row, 7)),
            transfer_id=_opt_uuid(_cell(row, 8)),
            series_id=_opt_uuid(_cell(row, 9)),
            installment_number=int(_cell(row, 10, "1")),
            total_installments=int(_cell(row, 11, "1")),
            description=_cell(row, 12) or None,
            created_at=datetime.fromisoformat(_cell(row, 13)),
            updated_at=datetime.fromisoformat(_cell(row, 14)),
        )

    @remote_retry
    async def insert(
        self,
        transactions: Union[Transaction, list[Transaction]],
    ) -> list[Transaction]:
        batch = transactions if isinstance(transactions, list) else [transactions]
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.append_rows(
                [self._tx_to_row(tx) for tx in batch],
                value_input_option="RAW",
            )
            return batch
        except Exception as e:
            raise StorageError(f"Failed to insert transactions: {e}")

    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            _, row = _find_row(sheet, transaction_id)
            return self._row_to_tx(row)
        except NotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update(
        self,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            idx, row = _find_row(sheet, transaction_id)
            data = self._row_to_tx(row).model_dump()
            data.update(fields)
            data["updated_at"] = datetime.now(timezone.utc)
            updated = Transaction.model_validate(data)
            _write_row(sheet, idx, self._tx_to_row(updated))
            return updated
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete(self, flt: TransactionFilter) -> int:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            doomed = []
            for idx, row in enumerate(all_rows[1:], start=2):
                if not row or not row[0]:
                    continue
                try:
                    if flt.matches(self._row_to_tx(row)):
                        doomed.append(idx)
                except ValueError:
                    continue
            # Bottom-up so earlier indices stay valid
            for idx in reversed(doomed):
                sheet.delete_rows(idx)
            return len(doomed)
        except Exception as e:
            raise StorageError(f"Failed to delete transactions: {e}")

    async def query(self, flt: TransactionFilter) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            rows = [tx for tx in _scan(sheet, self._row_to_tx) if flt.matches(tx)]
            rows.sort(key=lambda t: (t.date, t.installment_number, t.created_at))
            return rows
        except Exception as e:
            raise StorageError(f"Failed to query transactions: {e}")

    async def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            rows = [
                tx for tx in _scan(sheet, self._row_to_tx)
                if (date_from is None or tx.date >= date_from)
                and (date_to is None or tx.date <= date_to)
            ]
            rows.sort(key=lambda t: (t.date, t.created_at), reverse=True)
            return rows[offset:offset + limit]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")


class GoogleSheetsCreditCardStorage(CreditCardStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _card_to_row(self, card: CreditCard) -> list:
        return [
            str(card.id),
            card.name,
            _opt_str(card.account_id),
            str(card.closing_day),
            str(card.due_day),
            _opt_str(card.credit_limit),
            str(card.is_active),
        ]

    def _row_to_card(self, row: list) -> CreditCard:
        return CreditCard(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            account_id=_opt_uuid(_cell(row, 2)),
            closing_day=int(_cell(row, 3)),
            due_day=int(_cell(row, 4)),
            credit_limit=Decimal(_cell(row, 5)) if _cell(row, 5) else None,
            is_active=_bool(_cell(row, 6, "True")),
        )

    @remote_retry
    async def get_card(self, card_id: UUID) -> Optional[CreditCard]:
        try:
            sheet = self._client.get_cards_sheet()
            _, row = _find_row(sheet, card_id)
            return self._row_to_card(row)
        except NotFoundError:
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get credit card: {e}")

    async def list_cards(self) -> list[CreditCard]:
        try:
            return _scan(self._client.get_cards_sheet(), self._row_to_card)
        except Exception as e:
            raise StorageError(f"Failed to list credit cards: {e}")

    async def save_card(self, card: CreditCard) -> CreditCard:
        try:
            sheet = self._client.get_cards_sheet()
            try:
                idx, _ = _find_row(sheet, card.id)
                _write_row(sheet, idx, self._card_to_row(card))
            except NotFoundError:
                sheet.append_row(self._card_to_row(card), value_input_option="RAW")
            return card
        except Exception as e:
            raise StorageError(f"Failed to save credit card: {e}")


class GoogleSheetsCreditCardBillStorage(CreditCardBillStorageInterface):
    """
    Credit card bills, one per row.

    Sheets cannot enforce the (card, reference month) key, so insert
    scans for an existing row first and raises DuplicateError.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _bill_to_row(self, bill: CreditCardBill) -> list:
        return [
            str(bill.id),
            str(bill.credit_card_id),
            bill.reference_month.isoformat(),
            bill.closing_date.isoformat(),
            bill.due_date.isoformat(),
            str(bill.total_amount),
            str(bill.paid_amount),
            bill.status.value,
            bill.created_at.isoformat(),
        ]

    def _row_to_bill(self, row: list) -> CreditCardBill:
        return CreditCardBill(
            id=UUID(_cell(row, 0)),
            credit_card_id=UUID(_cell(row, 1)),
            reference_month=date.fromisoformat(_cell(row, 2)),
            closing_date=date.fromisoformat(_cell(row, 3)),
            due_date=date.fromisoformat(_cell(row, 4)),
            total_amount=Decimal(_cell(row, 5, "0")),
            paid_amount=Decimal(_cell(row, 6, "0")),
            status=BillStatus(_cell(row, 7, "open")),
            created_at=datetime.fromisoformat(_cell(row, 8)),
        )

    @remote_retry
    async def find(
        self,
        card_id: UUID,
        reference_month: date,
    ) -> Optional[CreditCardBill]:
        try:
            for bill in _scan(self._client.get_bills_sheet(), self._row_to_bill):
                if bill.credit_card_id == card_id and bill.reference_month == reference_month:
                    return bill
            return None
        except Exception as e:
            raise StorageError(f"Failed to find bill: {e}")

    async def get(self, bill_id: UUID) -> Optional[CreditCardBill]:
        try:
            _, row = _find_row(self._client.get_bills_sheet(), bill_id)
            return self._row_to_bill(row)
        except NotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"Failed to get bill: {e}")

    @remote_retry
    async def insert(self, bill: CreditCardBill) -> CreditCardBill:
        try:
            sheet = self._client.get_bills_sheet()
            for existing in _scan(sheet, self._row_to_bill):
                if (
                    existing.credit_card_id == bill.credit_card_id
                    and existing.reference_month == bill.reference_month
                ):
                    raise DuplicateError(
                        f"Bill already exists for card {bill.credit_card_id} "
                        f"and month {bill.reference_month.isoformat()}"
                    )
            sheet.append_row(self._bill_to_row(bill), value_input_option="RAW")
            return bill
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert bill: {e}")

    async def delete(self, bill_id: UUID) -> bool:
        try:
            sheet = self._client.get_bills_sheet()
            idx, _ = _find_row(sheet, bill_id)
            sheet.delete_rows(idx)
            return True
        except NotFoundError:
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete bill: {e}")

    async def list_bills(self, card_id: UUID) -> list[CreditCardBill]:
        try:
            bills = [
                b for b in _scan(self._client.get_bills_sheet(), self._row_to_bill)
                if b.credit_card_id == card_id
            ]
            bills.sort(key=lambda b: b.reference_month)
            return bills
        except Exception as e:
            raise StorageError(f"Failed to list bills: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_opt_uuid(_cell(row, 5)),
            correlation_id=_opt_uuid(_cell(row, 6)),
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_bool(_cell(row, 10)),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in _scan(self._client.get_audit_sheet(), self._row_to_event)
                if e.correlation_id == correlation_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in _scan(self._client.get_audit_sheet(), self._row_to_event)
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = _scan(self._client.get_audit_sheet(), self._row_to_event)
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
