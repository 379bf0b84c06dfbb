from __future__ import annotations

from .base import BaseRepository


class UserRepository(BaseRepository):
    def add(
        self,
        user_id: str,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> None:
        self._execute(
            """
            INSERT INTO users (id, name, phone, email) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                phone = excluded.phone,
                email = excluded.email
            """,
            (user_id, name, phone, email),
        )

    def get_contact(self, user_id: str) -> str | None:
        """Return the user's phone, falling back to email."""
        row = self._fetch_one_as_dict(
            "SELECT phone, email FROM users WHERE id = ?", (user_id,)
        )
        if row is None:
            return None
        for key in ("phone", "email"):
            value = (row.get(key) or "").strip()
            if value:
                return value
        return None
