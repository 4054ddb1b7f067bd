# Services package init
"""
EngageSphere Backend - Services Layer
======================================

What:  Business logic between routes (HTTP) and the database (persistence).

Service Inventory:
    - PaymentGateway (abstract): contract for order/capture gateways
    - PayPalClient: PayPal Orders v2 implementation (httpx)
    - PaymentService: order/capture orchestration and ledger operations
"""
