from .orders import Order, order_is_cancelled
from .line_items import LineItem, LINE_ITEM_STATUS_ACTIVE, LINE_ITEM_STATUS_REMOVED
from .events import EditionEvent

__all__ = [
    'Order', 'order_is_cancelled',
    'LineItem', 'LINE_ITEM_STATUS_ACTIVE', 'LINE_ITEM_STATUS_REMOVED',
    'EditionEvent',
]
