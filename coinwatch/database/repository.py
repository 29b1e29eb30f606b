"""
Repository classes for user, watch-list and alert persistence.
"""

import sqlite3
from typing import Iterable, Optional

from .connection import Database
from .models import Alert, Direction, User


class UserRepository:
    """
    CRUD operations for users, their favorites and their alerts.

    A loaded User is a complete document: identity, display name, ordered
    favorites and ordered alerts. All methods raise StoreError on failure.
    """

    def __init__(self, db: Database):
        self.db = db

    def get_or_create(self, telegram_id: str, first_name: Optional[str] = None) -> User:
        """
        Get the user for ``telegram_id``, creating it on first contact.

        Safe to call concurrently for the same identity: the unique key on
        telegram_id turns a racing insert into a no-op.
        """
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO users (telegram_id, first_name)
                VALUES (?, ?)
                ON CONFLICT(telegram_id) DO NOTHING
                """,
                (telegram_id, first_name),
            )
            if first_name:
                cursor.execute(
                    """
                    UPDATE users SET first_name = ?
                    WHERE telegram_id = ? AND (first_name IS NULL OR first_name != ?)
                    """,
                    (first_name, telegram_id, first_name),
                )
            cursor.execute("SELECT * FROM users WHERE telegram_id = ?", (telegram_id,))
            return self._load(cursor, cursor.fetchone())

    def get_by_telegram_id(self, telegram_id: str) -> Optional[User]:
        """Get user by Telegram identity."""
        with self.db.transaction() as cursor:
            cursor.execute("SELECT * FROM users WHERE telegram_id = ?", (telegram_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._load(cursor, row)

    def find_with_active_alerts(self) -> list[User]:
        """List exactly the users whose alert list is non-empty."""
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                SELECT u.* FROM users u
                WHERE EXISTS (SELECT 1 FROM user_alerts a WHERE a.user_id = u.id)
                ORDER BY u.id
                """
            )
            return [self._load(cursor, row) for row in cursor.fetchall()]

    def list_all(self) -> list[User]:
        """List all users."""
        with self.db.transaction() as cursor:
            cursor.execute("SELECT * FROM users ORDER BY id")
            return [self._load(cursor, row) for row in cursor.fetchall()]

    def count(self) -> int:
        """Count users."""
        with self.db.transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM users")
            return cursor.fetchone()[0]

    def save(self, user: User) -> None:
        """
        Replace the persisted document for the user's identity.

        Favorites and alerts are rewritten wholesale in one transaction.
        Alerts keep their ids where they have one.
        """
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO users (telegram_id, first_name)
                VALUES (?, ?)
                ON CONFLICT(telegram_id) DO UPDATE SET
                    first_name = excluded.first_name
                """,
                (user.telegram_id, user.first_name),
            )
            cursor.execute(
                "SELECT id FROM users WHERE telegram_id = ?", (user.telegram_id,)
            )
            user.id = cursor.fetchone()["id"]

            cursor.execute("DELETE FROM user_favorites WHERE user_id = ?", (user.id,))
            cursor.executemany(
                """
                INSERT INTO user_favorites (user_id, coin_id, position)
                VALUES (?, ?, ?)
                """,
                [(user.id, coin_id, i) for i, coin_id in enumerate(user.favorites)],
            )

            cursor.execute("DELETE FROM user_alerts WHERE user_id = ?", (user.id,))
            for alert in user.alerts:
                self._insert_alert(cursor, user.id, alert)

    def add_favorite(self, user: User, coin_id: str) -> bool:
        """
        Append a coin to the user's watch-list.

        Returns:
            False if the coin was already being watched
        """
        with self.db.transaction() as cursor:
            user_id = self._user_id(cursor, user)
            cursor.execute(
                """
                INSERT INTO user_favorites (user_id, coin_id, position)
                SELECT ?, ?, COALESCE(MAX(position), -1) + 1
                FROM user_favorites WHERE user_id = ?
                ON CONFLICT(user_id, coin_id) DO NOTHING
                """,
                (user_id, coin_id, user_id),
            )
            added = cursor.rowcount > 0
        if added and coin_id not in user.favorites:
            user.favorites.append(coin_id)
        return added

    def remove_favorite(self, user: User, coin_id: str) -> bool:
        """
        Remove a coin from the user's watch-list.

        Returns:
            False if the coin was not being watched
        """
        with self.db.transaction() as cursor:
            user_id = self._user_id(cursor, user)
            cursor.execute(
                "DELETE FROM user_favorites WHERE user_id = ? AND coin_id = ?",
                (user_id, coin_id),
            )
            removed = cursor.rowcount > 0
        user.favorites = [c for c in user.favorites if c != coin_id]
        return removed

    def add_alert(self, user: User, alert: Alert) -> Alert:
        """Persist a new alert for the user and assign its id."""
        with self.db.transaction() as cursor:
            user_id = self._user_id(cursor, user)
            self._insert_alert(cursor, user_id, alert)
        user.alerts.append(alert)
        return alert

    def remove_alerts(self, user: User, alerts: Iterable[Alert]) -> int:
        """
        Delete specific alert instances by id.

        Alerts added concurrently by other writers are left untouched.

        Returns:
            Number of alerts actually deleted
        """
        alert_ids = [a.id for a in alerts if a.id is not None]
        if not alert_ids:
            return 0

        placeholders = ", ".join("?" for _ in alert_ids)
        with self.db.transaction() as cursor:
            user_id = self._user_id(cursor, user)
            cursor.execute(
                f"""
                DELETE FROM user_alerts
                WHERE user_id = ? AND id IN ({placeholders})
                """,
                (user_id, *alert_ids),
            )
            deleted = cursor.rowcount

        removed = set(alert_ids)
        user.alerts = [a for a in user.alerts if a.id not in removed]
        return deleted

    def _user_id(self, cursor: sqlite3.Cursor, user: User) -> int:
        """Resolve the row id for a user, creating the row if needed."""
        if user.id is not None:
            return user.id
        cursor.execute(
            """
            INSERT INTO users (telegram_id, first_name)
            VALUES (?, ?)
            ON CONFLICT(telegram_id) DO NOTHING
            """,
            (user.telegram_id, user.first_name),
        )
        cursor.execute("SELECT id FROM users WHERE telegram_id = ?", (user.telegram_id,))
        user.id = cursor.fetchone()["id"]
        return user.id

    def _insert_alert(self, cursor: sqlite3.Cursor, user_id: int, alert: Alert) -> None:
        cursor.execute(
            """
            INSERT INTO user_alerts (id, user_id, coin_id, target_price, direction)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                alert.id,
                user_id,
                alert.coin_id,
                alert.target_price,
                Direction(alert.direction).value,
            ),
        )
        alert.id = cursor.lastrowid
        alert.user_id = user_id

    def _load(self, cursor: sqlite3.Cursor, row) -> User:
        """Convert a users row plus its child rows to a User."""
        user_id = row["id"]

        cursor.execute(
            """
            SELECT coin_id FROM user_favorites
            WHERE user_id = ?
            ORDER BY position, id
            """,
            (user_id,),
        )
        favorites = [r["coin_id"] for r in cursor.fetchall()]

        cursor.execute(
            "SELECT * FROM user_alerts WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        alerts = [self._row_to_alert(r) for r in cursor.fetchall()]

        return User(
            id=user_id,
            telegram_id=row["telegram_id"],
            first_name=row["first_name"],
            favorites=favorites,
            alerts=alerts,
            created_at=row["created_at"],
        )

    def _row_to_alert(self, row) -> Alert:
        """Convert database row to Alert."""
        return Alert(
            id=row["id"],
            user_id=row["user_id"],
            coin_id=row["coin_id"],
            target_price=row["target_price"],
            direction=Direction(row["direction"]),
            created_at=row["created_at"],
        )
