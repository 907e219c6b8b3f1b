from .tenancy import Business, Membership, Invitation, DEFAULT_PAYMENT_METHODS
from .auth import User, SessionToken, UserPermissionOverride, WorkflowRoleAssignment
from .inventory import Product, ProductPriceTier, ProductVariant, StockAdjustment
from .customers import Customer
from .sales import Sale, SaleLine, CheckoutSession, CartLine
from .approvals import ApprovalRecord, ApprovalRecordLine, ApprovalSignature, ApprovalAuditEntry
from .banking import BankAccount, BankTransaction
from .expenses import ExpenseRequest, Expense
from .communications import Notification
from .security import SecurityEvent, Incident
from .documents import DocumentSequence

__all__ = [
    'Business', 'Membership', 'Invitation', 'DEFAULT_PAYMENT_METHODS',
    'User', 'SessionToken', 'UserPermissionOverride', 'WorkflowRoleAssignment',
    'Product', 'ProductPriceTier', 'ProductVariant', 'StockAdjustment',
    'Customer',
    'Sale', 'SaleLine', 'CheckoutSession', 'CartLine',
    'ApprovalRecord', 'ApprovalRecordLine', 'ApprovalSignature', 'ApprovalAuditEntry',
    'BankAccount', 'BankTransaction',
    'ExpenseRequest', 'Expense',
    'Notification',
    'SecurityEvent', 'Incident',
    'DocumentSequence',
]
