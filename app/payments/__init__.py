"""
Payments app: payment intents, idempotent provider webhooks, refunds
and reconciliation for orders.

This app handles:
- Payment intent creation and confirmation against a provider
- Signed webhook ingestion, deduplicated by (provider, event_id)
- Atomic application of normalized events to intents, payments, refunds
  and their order
- Refund requests, retried in place on the same row
- Periodic replay, drift repair and intent expiry jobs (Celery beat)

Related apps:
    - orders: Order and OrderStatusLog, the rows payments settle

Usage:
    from payments.engine import get_engine

    engine = get_engine()
    intent = engine.checkout.create_intent(order, amount=order.total_amount).data
    engine.checkout.confirm_intent(intent)

    # Provider webhook
    engine.event_store.ingest("mock", body, signature)
"""
