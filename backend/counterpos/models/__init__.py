from .catalog import (
    Category,
    Product,
    Recipe,
    RecipeIngredient,
    Addon,
    AddonGroup,
    addon_group_members,
    product_addon_groups,
    recipe_addon_groups,
)
from .parties import Customer, Supplier, LedgerPayment
from .sales import Sale, SaleLine
from .shifts import Shift, Expense
from .purchases import PurchaseInvoice, PurchaseLine
from .settings import ShopSettings
from .auth import User, SessionToken

__all__ = [
    'Category', 'Product', 'Recipe', 'RecipeIngredient', 'Addon', 'AddonGroup',
    'addon_group_members', 'product_addon_groups', 'recipe_addon_groups',
    'Customer', 'Supplier', 'LedgerPayment',
    'Sale', 'SaleLine',
    'Shift', 'Expense',
    'PurchaseInvoice', 'PurchaseLine',
    'ShopSettings',
    'User', 'SessionToken',
]
