"""
LLM Configuration Service Module

Stores the AI gateway endpoints the backend can talk to. Exactly one row
may be active; the AI gateway service reads it on startup and on reload.
"""

import logging
import sqlite3
from typing import Any

from app.models.llm_types import LLMConfiguration, LLMConfigurationMasked
from app.services.base_database_service import DEFAULT_DB_PATH, BaseDatabaseService

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT id, name, description, base_url, api_key, model_name,
           is_active, created_at, updated_at
    FROM llm_configurations
"""


class LLMConfigService(BaseDatabaseService):
    """
    CRUD for the llm_configurations table.

    Unlike the publication reads, failures here raise: a broken
    configuration store should be visible rather than silently falling
    back to environment defaults.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        super().__init__(db_path)
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS llm_configurations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    description TEXT,
                    base_url TEXT NOT NULL,
                    api_key TEXT NOT NULL,
                    model_name TEXT NOT NULL,
                    is_active INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    @staticmethod
    def mask_api_key(api_key: str) -> str:
        """Keep the first 8 and last 4 characters, e.g. "sk-or-v1***74af"."""
        if not api_key or len(api_key) <= 12:
            return "***"
        return f"{api_key[:8]}***{api_key[-4:]}"

    def _to_masked(self, row: sqlite3.Row) -> LLMConfigurationMasked:
        fields = dict(row)
        fields["api_key_preview"] = self.mask_api_key(fields.pop("api_key"))
        fields["is_active"] = bool(fields["is_active"])
        return LLMConfigurationMasked(**fields)

    def get_all_configurations(self) -> list[LLMConfigurationMasked]:
        """All configurations, active first, then by name."""
        with self.get_connection() as conn:
            rows = conn.execute(f"{_SELECT} ORDER BY is_active DESC, name ASC").fetchall()
        return [self._to_masked(row) for row in rows]

    def get_active_configuration(self) -> LLMConfiguration | None:
        """
        The active configuration with its full API key.

        Returns:
            The active configuration, or None if none is active
        """
        with self.get_connection() as conn:
            row = conn.execute(f"{_SELECT} WHERE is_active = 1 LIMIT 1").fetchone()
        if not row:
            return None
        return LLMConfiguration(**{**dict(row), "is_active": True})

    def get_configuration_by_id(self, config_id: int) -> LLMConfigurationMasked | None:
        with self.get_connection() as conn:
            row = conn.execute(f"{_SELECT} WHERE id = ?", (config_id,)).fetchone()
        return self._to_masked(row) if row else None

    def create_configuration(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model_name: str,
        description: str | None = None,
        is_active: bool = False,
    ) -> LLMConfigurationMasked:
        """
        Insert a configuration, optionally making it the active one.

        Raises:
            ValueError: If the name is already taken
        """
        with self.get_connection() as conn:
            taken = conn.execute(
                "SELECT 1 FROM llm_configurations WHERE name = ?", (name,)
            ).fetchone()
            if taken:
                raise ValueError(f"Configuration with name '{name}' already exists")

            if is_active:
                conn.execute("UPDATE llm_configurations SET is_active = 0")
            cursor = conn.execute(
                """
                INSERT INTO llm_configurations
                (name, description, base_url, api_key, model_name, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, description, base_url, api_key, model_name, int(is_active)),
            )
            conn.commit()
            config_id = cursor.lastrowid

        logger.info(f"[LLMConfig] Created configuration '{name}' (ID: {config_id})")
        return self.get_configuration_by_id(config_id)

    def activate_configuration(self, config_id: int) -> dict[str, Any]:
        """
        Make one configuration active and every other inactive.

        Raises:
            ValueError: If the configuration does not exist
        """
        with self.get_connection() as conn:
            target = conn.execute(
                "SELECT is_active FROM llm_configurations WHERE id = ?", (config_id,)
            ).fetchone()
            if not target:
                raise ValueError(f"Configuration with ID {config_id} not found")
            if target["is_active"]:
                return {
                    "message": "Configuration already active",
                    "configuration": self.get_configuration_by_id(config_id),
                }

            previous = conn.execute(
                "SELECT id FROM llm_configurations WHERE is_active = 1"
            ).fetchone()
            conn.execute("UPDATE llm_configurations SET is_active = 0")
            conn.execute(
                """
                UPDATE llm_configurations
                SET is_active = 1, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (config_id,),
            )
            conn.commit()

        logger.info(f"[LLMConfig] Activated configuration ID: {config_id}")
        return {
            "message": "Configuration activated successfully",
            "previous_active_id": previous["id"] if previous else None,
            "new_active_id": config_id,
            "configuration": self.get_configuration_by_id(config_id),
        }

    def delete_configuration(self, config_id: int) -> bool:
        """
        Delete an inactive configuration.

        Raises:
            ValueError: If the configuration does not exist or is active
        """
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT is_active FROM llm_configurations WHERE id = ?", (config_id,)
            ).fetchone()
            if not row:
                raise ValueError(f"Configuration with ID {config_id} not found")
            if row["is_active"]:
                raise ValueError(
                    "Cannot delete the active configuration. Please activate another configuration first."
                )
            conn.execute("DELETE FROM llm_configurations WHERE id = ?", (config_id,))
            conn.commit()

        logger.info(f"[LLMConfig] Deleted configuration ID: {config_id}")
        return True
