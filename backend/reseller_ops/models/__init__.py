from .tenancy import Environment, Membership, MEMBERSHIP_ROLES
from .inventory import Location, Product, ProductStatusHistory, PRODUCT_STATUSES
from .sales import Sale

__all__ = [
    'Environment', 'Membership', 'MEMBERSHIP_ROLES',
    'Location', 'Product', 'ProductStatusHistory', 'PRODUCT_STATUSES',
    'Sale',
]
