from __future__ import annotations

import argparse

from services.storefront.app.db.database import session_scope
from services.storefront.app.db.init_db import init_db
from services.storefront.app.services.commerce_factory import get_commerce_backend
from services.storefront.app.services.gateway_factory import get_payment_gateway
from services.storefront.app.settlement.errors import OrderCreationFailedError, SettlementError
from services.storefront.app.settlement.orchestrator import SettlementOrchestrator
from services.storefront.app.settlement.store import SqlPendingSettlementStore
from services.storefront.app.utils.logging import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Inspect and resolve captured payments that never became orders"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List every pending settlement")

    retry = sub.add_parser("retry", help="Re-submit the stored order for a client")
    retry.add_argument("--client-id", required=True)

    dismiss = sub.add_parser("dismiss", help="Drop a pending settlement (refund handled out of band)")
    dismiss.add_argument("--client-id", required=True)

    args = parser.parse_args()

    configure_logging()
    init_db()

    with session_scope() as db:
        if args.command == "list":
            pending = SqlPendingSettlementStore(db).list_all()
            if not pending:
                print("No pending settlements")
                return 0
            for p in pending:
                amount = p.snapshot.amount
                print(
                    f"{p.client_id}\tpayment={p.confirmation.gateway_payment_id}"
                    f"\torder={p.confirmation.gateway_order_id}"
                    f"\ttotal={amount.total_minor} {amount.currency}"
                    f"\tretries={p.retry_count}"
                    f"\tcreated={p.created_at.isoformat()}"
                    f"\tlast_error={p.last_error or '-'}"
                )
            return 0

        orchestrator = SettlementOrchestrator(
            db,
            gateway=get_payment_gateway(),
            commerce=get_commerce_backend(),
        )

        if args.command == "retry":
            try:
                result = orchestrator.retry_pending(args.client_id)
            except OrderCreationFailedError as e:
                print(f"Retry failed (attempt {e.pending.retry_count}): {e.reason}")
                return 1
            except SettlementError as e:
                print(str(e))
                return 1
            print(f"Created order #{result.order.order_number} for payment {result.gateway_payment_id}")
            return 0

        try:
            dismissed = orchestrator.dismiss_pending(args.client_id)
        except SettlementError as e:
            print(str(e))
            return 1
        print(
            f"Dismissed pending settlement for {dismissed.client_id}; "
            f"payment {dismissed.confirmation.gateway_payment_id} needs manual reconciliation"
        )
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
