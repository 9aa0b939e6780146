# Overview: Explicit service wiring; one Services container per app, stored in app.extensions.

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from .extensions import db
from .processor import PaymentProcessor
from .services.catalog import CatalogLookup
from .services.checkout_service import CheckoutOrchestrator
from .services.entitlement_service import AccessChecker, EntitlementGranter, EntitlementService
from .services.event_bus import SettlementEventBus
from .services.identity import IdentityResolver
from .services.membership_service import MembershipService
from .services.order_service import OrderLedger
from .services.subscription_service import SubscriptionReconciler
from .services.webhook_service import WebhookGateway


EXTENSION_KEY = "settlement"


@dataclass
class Services:
    catalog: CatalogLookup
    processor: PaymentProcessor
    identity: IdentityResolver
    bus: SettlementEventBus
    ledger: OrderLedger
    checkout: CheckoutOrchestrator
    reconciler: SubscriptionReconciler
    webhooks: WebhookGateway
    entitlements: EntitlementService
    granter: EntitlementGranter
    membership: MembershipService
    access: AccessChecker


def build_services(
    app: Flask,
    *,
    catalog: CatalogLookup,
    processor: PaymentProcessor,
    identity: IdentityResolver,
) -> Services:
    """Construct every service with its collaborators and subscribe the settlement listeners."""
    config = app.config
    session = db.session
    currencies = dict(
        supported_currencies=config["SUPPORTED_CURRENCIES"],
        default_currency=config["DEFAULT_CURRENCY"],
    )

    bus = SettlementEventBus(session)
    ledger = OrderLedger(session, catalog, bus, **currencies)
    checkout = CheckoutOrchestrator(ledger, processor, frontend_url=config["FRONTEND_URL"])
    reconciler = SubscriptionReconciler(session)
    webhooks = WebhookGateway(
        ledger,
        reconciler,
        secret=config["STRIPE_WEBHOOK_SECRET"],
        tolerance=config["STRIPE_WEBHOOK_TOLERANCE"],
    )
    entitlements = EntitlementService(session, catalog)
    granter = EntitlementGranter(entitlements)
    membership = MembershipService(session, processor, checkout, **currencies)
    access = AccessChecker(entitlements, membership)

    bus.subscribe(EntitlementGranter.LISTENER_NAME, granter.on_order_paid)

    return Services(
        catalog=catalog,
        processor=processor,
        identity=identity,
        bus=bus,
        ledger=ledger,
        checkout=checkout,
        reconciler=reconciler,
        webhooks=webhooks,
        entitlements=entitlements,
        granter=granter,
        membership=membership,
        access=access,
    )


def get_services(app: Flask | None = None) -> Services:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
