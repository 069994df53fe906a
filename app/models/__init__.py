# app/models/__init__.py
from .party import Party, PartyKind
from .transaction import LedgerTransaction, TransactionType, PaymentMethod, TransactionStatus
from .budget import Budget, BudgetDuration, BudgetStatus
from .expense import Expense, ExpenseType, Frequency
from .income import Income
from .personal import PersonalContact, PersonalTransaction, LendDirection, PersonalEntryType
