"""
Staging table provisioning.

Every import of a source drops and recreates its table: the table is a
disposable staging copy of the latest extract, never a schema other tables
may depend on. Its contract is:

- `id` BIGINT AUTO_INCREMENT primary key, renumbered on every import
- one column per CSV header, in file order, typed TEXT unless overridden
- `created_at` / `updated_at` audit timestamps set by the database

Anything that needs stable identity across runs must copy rows out of the
staging table into tables it owns.
"""

import logging
from typing import List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from core.exceptions import TableCreateError
from schemas.source import ColumnSpec

logger = logging.getLogger(__name__)

NO_PARAMS = {"no_parameters": True}


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def build_table_ddl(table_name: str, columns: List[ColumnSpec]) -> Tuple[str, str]:
    """Return the (drop, create) statement pair for a staging table"""
    table = quote_identifier(table_name)
    column_defs = ", ".join(
        f"{quote_identifier(col.name)} {col.sql_type}"
        for col in columns
    )

    drop_sql = f"DROP TABLE IF EXISTS {table}"
    create_sql = (
        f"CREATE TABLE {table} ("
        f"id BIGINT AUTO_INCREMENT PRIMARY KEY, "
        f"{column_defs}, "
        f"created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP, "
        f"updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP"
        f") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
    )
    return drop_sql, create_sql


class TableProvisioner:
    """Drop and recreate staging tables on an open connection"""

    async def provision(
        self,
        conn: AsyncConnection,
        table_name: str,
        columns: List[ColumnSpec],
    ) -> None:
        """
        Raises:
            TableCreateError: If either statement fails
        """
        drop_sql, create_sql = build_table_ddl(table_name, columns)
        logger.debug(f" --> Creating table: {table_name} ({len(columns)} columns)")

        try:
            await conn.exec_driver_sql(drop_sql, execution_options=NO_PARAMS)
            await conn.exec_driver_sql(create_sql, execution_options=NO_PARAMS)
            await conn.commit()
        except SQLAlchemyError as e:
            await conn.rollback()
            raise TableCreateError(
                "CREATE TABLE failed",
                context={"table_name": table_name, "columns": len(columns)},
                original_exception=e,
            )

        logger.debug(f" --> Table created: {table_name}")
