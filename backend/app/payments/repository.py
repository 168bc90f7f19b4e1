"""PostgreSQL reads backing the payment history."""
from __future__ import annotations

from typing import Optional, Sequence

from ..billing.repository import PostgresRepository
from .models import PaymentRecord


class PostgresPaymentLedger(PostgresRepository):
    def list_payments(
        self,
        user_id: str,
        *,
        limit: int,
        subscription_id: Optional[str] = None,
    ) -> Sequence[PaymentRecord]:
        clauses = ["user_id = %s"]
        params: list = [user_id]
        if subscription_id:
            clauses.append("subscription_id = %s")
            params.append(subscription_id)
        params.append(max(1, limit))

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT
                    id,
                    user_id,
                    subscription_id,
                    amount_cents,
                    currency,
                    paid_at,
                    receipt_url,
                    description,
                    provider,
                    stripe_payment_intent_id,
                    status
                FROM payments
                WHERE {' AND '.join(clauses)}
                ORDER BY paid_at DESC NULLS LAST
                LIMIT %s
                """,
                tuple(params),
            )
            rows = cursor.fetchall()
        return [PaymentRecord.from_row(row) for row in rows]


class PostgresCustomerIdLookup(PostgresRepository):
    """Reads the newest processor customer id recorded for a user."""

    def latest_customer_id(self, user_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT stripe_customer_id
                FROM subscriptions
                WHERE user_id = %s AND stripe_customer_id IS NOT NULL
                ORDER BY updated_at DESC NULLS LAST
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return row["stripe_customer_id"] if row else None


__all__ = ["PostgresCustomerIdLookup", "PostgresPaymentLedger"]
