from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import mysql.connector


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "DBConfig":
        return cls(
            host=str(raw["host"]),
            port=int(raw.get("port", 3306)),
            user=str(raw["user"]),
            password=str(raw["password"]),
            database=str(raw["database"]),
        )


class DatabaseConnection:
    """DB connection factory.

    Note: We create short-lived connections per operation; the remote store
    adapter and its subscription pollers each open their own.
    """

    def __init__(self, config: DBConfig):
        self._config = config

    @property
    def config(self) -> DBConfig:
        return self._config

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
        )
