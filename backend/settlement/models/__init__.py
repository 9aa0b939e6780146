from .orders import Order, OrderLineItem, OrderShipping
from .entitlements import Entitlement
from .membership import MembershipPlan, Subscription
from .events import EventPublication

__all__ = [
    'Order', 'OrderLineItem', 'OrderShipping',
    'Entitlement',
    'MembershipPlan', 'Subscription',
    'EventPublication',
]
