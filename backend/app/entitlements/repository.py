"""PostgreSQL persistence and remote procedures for seat entitlements."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Sequence, Tuple

from psycopg2.extensions import cursor as PgCursor

from ..billing.repository import PostgresRepository
from .models import DependentProfile, DependentProfileDraft, RemoteProcedureResult, SubscriptionRecord

_SUBSCRIPTION_COLUMNS = """
    id,
    user_id,
    status,
    current_period_end,
    seats,
    plan_id,
    stripe_customer_id,
    notified_expiry_at,
    created_at,
    updated_at
"""

_PROFILE_COLUMNS = """
    id,
    user_id,
    full_name,
    redemption_key,
    entitlement_confirmed_at,
    archived_at,
    created_at
"""


def season_years_for(day: date) -> Tuple[int, int]:
    """Seasons run from 1 August to 31 July."""

    start = day.year if (day.month, day.day) >= (8, 1) else day.year - 1
    return start, start + 1


def _row_to_subscription(row: dict) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row["id"],
        user_id=row["user_id"],
        status=row.get("status"),
        current_period_end=row.get("current_period_end"),
        seats=row.get("seats"),
        plan_id=row.get("plan_id"),
        stripe_customer_id=row.get("stripe_customer_id"),
        notified_expiry_at=row.get("notified_expiry_at"),
        created_at=row.get("created_at") or datetime.now(timezone.utc),
        updated_at=row.get("updated_at"),
    )


def _row_to_profile(row: dict) -> DependentProfile:
    return DependentProfile(
        id=row["id"],
        user_id=row["user_id"],
        full_name=row["full_name"],
        redemption_key=row.get("redemption_key"),
        entitlement_confirmed_at=row.get("entitlement_confirmed_at"),
        archived_at=row.get("archived_at"),
        created_at=row.get("created_at") or datetime.now(timezone.utc),
    )


class PostgresEntitlementGateway(PostgresRepository):
    """Invokes the SQL functions that own seat accounting."""

    def _procedure(self, name: str, sql: str, params: tuple) -> RemoteProcedureResult:
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()
        return RemoteProcedureResult.from_payload([dict(row) for row in rows], procedure=name)

    def seats_remaining(self, user_id: str) -> object:
        with self._cursor() as cursor:
            cursor.execute("SELECT seats_remaining(p_user_id => %s) AS remaining", (user_id,))
            row = cursor.fetchone()
        return row["remaining"] if row else None

    def ensure_profile(self, user_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("SELECT ensure_profile_server(p_user_id => %s)", (user_id,))

    def create_code_subscription(self, code: str, plan_id: str) -> RemoteProcedureResult:
        return self._procedure(
            "create_code_subscription",
            "SELECT * FROM create_code_subscription(p_code => %s, p_plan_id => %s)",
            (code, plan_id),
        )

    def redeem_access_code(self, code: str, user_id: str, profile_id: str) -> RemoteProcedureResult:
        return self._procedure(
            "redeem_access_code_for_player",
            "SELECT * FROM redeem_access_code_for_player(p_code => %s, p_user_id => %s, p_player_id => %s)",
            (code, user_id, profile_id),
        )

    def assign_free_seat(self, user_id: str, profile_id: str) -> RemoteProcedureResult:
        return self._procedure(
            "assign_free_seat_to_player",
            "SELECT * FROM assign_free_seat_to_player(p_user_id => %s, p_player_id => %s)",
            (user_id, profile_id),
        )


class PostgresSubscriptionRepository(PostgresRepository):
    def list_subscriptions(self, user_id: str) -> Sequence[SubscriptionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE user_id = %s
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_subscription(row) for row in rows]

    def list_expiring(self, *, start: datetime, end: datetime) -> Sequence[SubscriptionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE status = true
                  AND notified_expiry_at IS NULL
                  AND current_period_end >= %s
                  AND current_period_end <= %s
                ORDER BY current_period_end ASC
                """,
                (start, end),
            )
            rows = cursor.fetchall()
        return [_row_to_subscription(row) for row in rows]

    def mark_expiry_notified(self, subscription_id: str, notified_at: datetime) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE subscriptions SET notified_expiry_at = %s, updated_at = NOW() WHERE id = %s",
                (notified_at, subscription_id),
            )

    def deactivate_expired(self, now: datetime) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE subscriptions
                SET status = false, updated_at = NOW()
                WHERE status = true
                  AND current_period_end IS NOT NULL
                  AND current_period_end < %s
                """,
                (now,),
            )
            return cursor.rowcount or 0


class PostgresPlanRepository(PostgresRepository):
    def find_free_plan_id(self) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id
                FROM subscription_plans
                WHERE active = true AND COALESCE(amount_cents, 0) = 0
                ORDER BY created_at ASC
                LIMIT 1
                """
            )
            row = cursor.fetchone()
        return str(row["id"]) if row else None


class PostgresProfileRepository(PostgresRepository):
    """Writes a dependent profile and its membership rows in one transaction."""

    def create_profile(
        self,
        user_id: str,
        draft: DependentProfileDraft,
        *,
        redemption_key: str,
    ) -> DependentProfile:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO players (user_id, full_name, birthday, status, redemption_key)
                VALUES (%s, %s, %s, true, %s)
                RETURNING {_PROFILE_COLUMNS}
                """,
                (user_id, draft.full_name, draft.birthday, redemption_key),
            )
            profile = _row_to_profile(cursor.fetchone())
            season_id = draft.season_id or self._current_season_id(cursor)

            cursor.execute(
                """
                INSERT INTO player_seasons (player_id, season_id, avatar)
                VALUES (%s, %s, %s)
                ON CONFLICT (player_id, season_id) DO UPDATE SET avatar = EXCLUDED.avatar
                """,
                (profile.id, season_id, draft.avatar_path),
            )

            for block in draft.memberships:
                club_id = None
                if block.club_name:
                    cursor.execute(
                        """
                        INSERT INTO clubs (player_id, name)
                        VALUES (%s, %s)
                        ON CONFLICT (player_id, name) DO UPDATE SET name = EXCLUDED.name
                        RETURNING id
                        """,
                        (profile.id, block.club_name),
                    )
                    club_id = cursor.fetchone()["id"]

                team_id = None
                if block.team_name:
                    cursor.execute(
                        """
                        INSERT INTO teams (player_id, club_id, sport_id, name)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (player_id, club_id, sport_id, name) DO UPDATE SET name = EXCLUDED.name
                        RETURNING id
                        """,
                        (profile.id, club_id, block.sport_id, block.team_name),
                    )
                    team_id = cursor.fetchone()["id"]

                cursor.execute(
                    """
                    INSERT INTO competitions (player_id, season_id, sport_id, club_id, team_id, category_id, name)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        profile.id,
                        season_id,
                        block.sport_id,
                        club_id,
                        team_id,
                        block.category_id,
                        block.competition_name,
                    ),
                )
        return profile

    def _current_season_id(self, cursor: PgCursor) -> str:
        year_start, year_end = season_years_for(datetime.now(timezone.utc).date())
        cursor.execute(
            "SELECT id FROM seasons WHERE year_start = %s AND year_end = %s",
            (year_start, year_end),
        )
        row = cursor.fetchone()
        if not row:
            raise LookupError(f"No season row exists for {year_start}-{year_end}")
        return str(row["id"])

    def confirm_entitlement(self, profile_id: str, confirmed_at: datetime) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE players SET entitlement_confirmed_at = %s WHERE id = %s",
                (confirmed_at, profile_id),
            )

    def count_unconfirmed(self, user_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS pending
                FROM players
                WHERE user_id = %s AND entitlement_confirmed_at IS NULL AND archived_at IS NULL
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return int(row["pending"]) if row else 0

    def list_unconfirmed(self, *, created_before: datetime) -> Sequence[DependentProfile]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_PROFILE_COLUMNS}
                FROM players
                WHERE entitlement_confirmed_at IS NULL
                  AND archived_at IS NULL
                  AND redemption_key IS NOT NULL
                  AND created_at < %s
                ORDER BY created_at ASC
                """,
                (created_before,),
            )
            rows = cursor.fetchall()
        return [_row_to_profile(row) for row in rows]

    def archive_profile(self, profile_id: str, archived_at: datetime) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE players SET archived_at = %s, status = false WHERE id = %s",
                (archived_at, profile_id),
            )


class PostgresUserDirectory(PostgresRepository):
    def get_email(self, user_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute("SELECT email FROM users WHERE id = %s", (user_id,))
            row = cursor.fetchone()
        return row["email"] if row and row.get("email") else None


__all__ = [
    "PostgresEntitlementGateway",
    "PostgresPlanRepository",
    "PostgresProfileRepository",
    "PostgresSubscriptionRepository",
    "PostgresUserDirectory",
    "season_years_for",
]
