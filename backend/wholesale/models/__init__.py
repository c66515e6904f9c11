from .tenancy import Organization
from .auth import Profile, SessionToken
from .security import SecurityEvent
from .inventory import Product, DEFAULT_CATEGORIES
from .customers import Customer
from .invoices import Invoice, InvoiceItem, Payment
from .settings import BusinessSettings
from .changes import ChangeEvent

__all__ = [
    'Organization',
    'Profile', 'SessionToken', 'SecurityEvent',
    'Product', 'DEFAULT_CATEGORIES',
    'Customer',
    'Invoice', 'InvoiceItem', 'Payment',
    'BusinessSettings',
    'ChangeEvent',
]
