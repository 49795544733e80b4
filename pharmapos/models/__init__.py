"""Models package - exports all SQLAlchemy models."""
from pharmapos.models.app_user import AppUser, UserRole, ROLE_HIERARCHY
from pharmapos.models.product import Product
from pharmapos.models.location import Location
from pharmapos.models.inventory import InventoryRecord
from pharmapos.models.inventory_movement import InventoryMovement, MovementType, MovementReferenceType
from pharmapos.models.client import Client
from pharmapos.models.sale import Sale, SaleStatus
from pharmapos.models.sale_item import SaleItem
from pharmapos.models.payment import Payment, PaymentMethod, PAYMENT_METHOD_LABELS, normalize_payment_method
from pharmapos.models.loyalty import LoyaltyPlan, LoyaltyTransaction, LoyaltyTransactionType
from pharmapos.models.cash_register import CashRegisterSession
from pharmapos.models.refund import Refund, RefundItem, RefundStatus
from pharmapos.models.quote import Quote, QuoteItem, QuoteStatus
from pharmapos.models.settings import CompanySettings, TaxSetting, PrintSettings, DeviceSetting

__all__ = [
    'AppUser', 'UserRole', 'ROLE_HIERARCHY',
    'Product', 'Location', 'InventoryRecord',
    'InventoryMovement', 'MovementType', 'MovementReferenceType',
    'Client',
    'Sale', 'SaleStatus', 'SaleItem',
    'Payment', 'PaymentMethod', 'PAYMENT_METHOD_LABELS', 'normalize_payment_method',
    'LoyaltyPlan', 'LoyaltyTransaction', 'LoyaltyTransactionType',
    'CashRegisterSession',
    'Refund', 'RefundItem', 'RefundStatus',
    'Quote', 'QuoteItem', 'QuoteStatus',
    'CompanySettings', 'TaxSetting', 'PrintSettings', 'DeviceSetting',
]
