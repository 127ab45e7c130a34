"""
Escrow app: payment holds between marketplace buyers and sellers.

This app handles:
- Capture ingestion from Stripe Checkout webhooks
- The transaction custody state machine (ship, deliver, confirm, dispute)
- The payment hold ledger and the delayed payout schedule
- Seller payouts over Stripe Connect transfers or PayPal Payouts

Related apps:
    - core: base models, exceptions and service helpers

Usage:
    from escrow.services import EscrowTransactionService

    EscrowTransactionService.confirm_delivery(
        transaction_id, actor=Actor.for_user(request.user), satisfied=True
    )
"""
