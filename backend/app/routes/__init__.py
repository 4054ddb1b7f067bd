# Routes package init
"""
EngageSphere Backend - API Routes Package
==========================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - payment.py:  POST /payment/create     (create PayPal order + ledger row)
                   POST /payment/capture    (capture approved order)
                   POST /payment/get        (single payment by paymentId)
                   GET  /payment/all        (all payments, newest first)
    - admin.py:    GET  /admin/payments/stats, GET /admin/payments/user/{id},
                   PUT  /admin/payments/status, DELETE /admin/payments/{id}
    - health.py:   GET  /health

Routes stay thin: parse the request, call PaymentService, return its model.
"""
