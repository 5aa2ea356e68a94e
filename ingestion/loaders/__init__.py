"""
Staging table provisioning and CSV bulk loading.
"""

from ingestion.loaders.mysql_loader import MySQLLoader, build_load_statement
from ingestion.loaders.provisioner import TableProvisioner, build_table_ddl

__all__ = ["MySQLLoader", "build_load_statement", "TableProvisioner", "build_table_ddl"]
