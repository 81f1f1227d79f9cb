"""Пакет для версий миграций"""

from database.migrations.versions.v001_initial_schema import InitialSchema
from database.migrations.versions.v002_waiting_list import AddWaitingList

ALL_MIGRATIONS = [InitialSchema, AddWaitingList]

__all__ = ["InitialSchema", "AddWaitingList", "ALL_MIGRATIONS"]
