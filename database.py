"""
database.py
SQLite data layer for the capital ledger

Provides:
- Database initialization from CSVs
- Connection management
- Table refresh from CSV
- CSV export from tables
- Query execution for the loaders

The engine only ever reads from here. A failure to reach the store is the
one error the analytics surface to callers (LedgerUnavailableError);
everything row-level is handled downstream by the loaders.
"""

import sqlite3
import pandas as pd
from pathlib import Path
from typing import Optional, List, Dict, Any
import logging

import config

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Table definitions with their CSV sources
TABLE_DEFINITIONS = {
    'capital_transactions': {
        'csv': 'capital_transactions.csv',
        'description': 'Append-only ledger of capital movements',
        'key_columns': ['id']
    },
    'purchase_requests': {
        'csv': 'purchase_requests.csv',
        'description': 'Material purchase requests funded by investors',
        'key_columns': ['id']
    },
    'purchase_request_items': {
        'csv': 'purchase_request_items.csv',
        'description': 'Requested quantity and unit rate per material line',
        'key_columns': ['purchase_request_id']
    },
    'contractors': {
        'csv': 'contractors.csv',
        'description': 'Contractors and their finance terms',
        'key_columns': ['id']
    },
    'projects': {
        'csv': 'projects.csv',
        'description': 'Project display names and external identifiers',
        'key_columns': ['id']
    },
    'investors': {
        'csv': 'investors.csv',
        'description': 'Capital providers',
        'key_columns': ['id']
    },
}


class LedgerUnavailableError(RuntimeError):
    """The data layer could not be reached or a query against it failed."""


def get_db_connection() -> sqlite3.Connection:
    """
    Get database connection with optimizations

    Returns:
        sqlite3.Connection with row_factory set to Row
    """
    conn = sqlite3.connect(config.DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA temp_store=MEMORY")

    return conn


def create_additional_tables(conn: sqlite3.Connection):
    """Tables that don't come from CSVs"""

    conn.execute("""
        CREATE TABLE IF NOT EXISTS import_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            table_name TEXT NOT NULL,
            rows_imported INTEGER,
            import_mode TEXT,
            imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            imported_by TEXT,
            source_file TEXT
        )
    """)

    conn.commit()


def init_database(data_folder: Optional[str] = None) -> Dict[str, Any]:
    """
    Initialize database from CSV files

    Args:
        data_folder: Path to folder containing CSV files (default: current directory)

    Returns:
        Dictionary with results: {table_name: {'rows': count, 'status': 'success'|'skipped'|'error'}}
    """
    results = {}
    data_path = Path(data_folder) if data_folder else Path(".")

    conn = get_db_connection()

    logger.info("=" * 80)
    logger.info("LEDGER DATABASE INITIALIZATION")
    logger.info("=" * 80)

    try:
        for table_name, table_info in TABLE_DEFINITIONS.items():
            csv_file = data_path / table_info['csv']

            if not csv_file.exists():
                logger.warning(f"Skipped {table_name}: {csv_file} not found")
                results[table_name] = {'rows': 0, 'status': 'skipped', 'file': str(csv_file)}
                continue

            try:
                df = pd.read_csv(csv_file, dtype=str)
                df.columns = [str(c).strip() for c in df.columns]
                df.to_sql(table_name, conn, if_exists='replace', index=False)

                logger.info(f"Loaded {table_name}: {len(df):,} rows from {csv_file.name}")
                results[table_name] = {'rows': len(df), 'status': 'success', 'file': str(csv_file)}

            except (OSError, ValueError, pd.errors.ParserError, sqlite3.Error) as e:
                logger.error(f"Error loading {table_name}: {e}")
                results[table_name] = {'rows': 0, 'status': 'error', 'error': str(e)}

        create_additional_tables(conn)
        create_indexes(conn)
    finally:
        conn.close()

    logger.info("LEDGER DATABASE INITIALIZATION COMPLETE")
    return results


def create_indexes(conn: sqlite3.Connection):
    """Create indexes for common queries. Tables not yet loaded are skipped."""

    indexes = [
        "CREATE INDEX IF NOT EXISTS idx_tx_request ON capital_transactions(purchase_request_id)",
        "CREATE INDEX IF NOT EXISTS idx_tx_investor ON capital_transactions(investor_id)",
        "CREATE INDEX IF NOT EXISTS idx_tx_type_status ON capital_transactions(transaction_type, status)",
        "CREATE INDEX IF NOT EXISTS idx_pr_project ON purchase_requests(project_id)",
        "CREATE INDEX IF NOT EXISTS idx_pr_contractor ON purchase_requests(contractor_id)",
        "CREATE INDEX IF NOT EXISTS idx_items_request ON purchase_request_items(purchase_request_id)",
    ]

    for idx_sql in indexes:
        try:
            conn.execute(idx_sql)
        except sqlite3.OperationalError as e:
            logger.warning(f"Index creation warning: {e}")

    conn.commit()


def refresh_table_from_csv(
    table_name: str,
    csv_path: str,
    mode: str = 'replace',
    user: str = None
) -> Dict[str, Any]:
    """
    Refresh a table from CSV file

    Args:
        table_name: Database table name
        csv_path: Path to CSV file
        mode: 'replace' (delete all, insert new) or 'append' (add to existing)
        user: Username for logging (optional)

    Returns:
        Dictionary with import results
    """
    if table_name not in TABLE_DEFINITIONS:
        return {'status': 'error', 'table': table_name, 'error': 'unknown table'}

    try:
        df = pd.read_csv(csv_path, dtype=str)
        df.columns = [str(c).strip() for c in df.columns]

        conn = get_db_connection()
        try:
            df.to_sql(table_name, conn, if_exists=mode, index=False)
            create_additional_tables(conn)
            conn.execute("""
                INSERT INTO import_log (table_name, rows_imported, import_mode, imported_by, source_file)
                VALUES (?, ?, ?, ?, ?)
            """, (table_name, len(df), mode, user or 'system', str(csv_path)))
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Refreshed {table_name}: {len(df):,} rows ({mode} mode)")

        return {
            'status': 'success',
            'table': table_name,
            'rows': len(df),
            'mode': mode
        }

    except (OSError, ValueError, pd.errors.ParserError, sqlite3.Error) as e:
        logger.error(f"Error refreshing {table_name}: {e}")
        return {
            'status': 'error',
            'table': table_name,
            'error': str(e)
        }


def export_table_to_csv(table_name: str, csv_path: str) -> Dict[str, Any]:
    """
    Export database table to CSV

    Args:
        table_name: Database table name
        csv_path: Output CSV path

    Returns:
        Dictionary with export results
    """
    if table_name not in TABLE_DEFINITIONS:
        return {'status': 'error', 'table': table_name, 'error': 'unknown table'}

    try:
        df = execute_query(f"SELECT * FROM {table_name}")
        df.to_csv(csv_path, index=False)

        logger.info(f"Exported {table_name}: {len(df):,} rows to {csv_path}")

        return {
            'status': 'success',
            'table': table_name,
            'rows': len(df),
            'file': str(csv_path)
        }

    except (LedgerUnavailableError, OSError) as e:
        logger.error(f"Error exporting {table_name}: {e}")
        return {
            'status': 'error',
            'table': table_name,
            'error': str(e)
        }


def list_tables() -> List[str]:
    """Names of the tables currently present in the store"""
    df = execute_query("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    return df['name'].tolist()


def validate_database() -> Dict[str, Any]:
    """
    Validate that every ledger table exists

    Returns:
        Dictionary with validation results
    """
    issues = []
    present = set(list_tables())

    for table_name in TABLE_DEFINITIONS.keys():
        if table_name not in present:
            issues.append({
                'severity': 'error',
                'table': table_name,
                'message': 'Table missing'
            })
            continue

        count = execute_query(f"SELECT COUNT(*) as cnt FROM {table_name}")
        if int(count['cnt'].iloc[0]) == 0:
            issues.append({
                'severity': 'warning',
                'table': table_name,
                'message': 'Table exists but is empty'
            })

    return {
        'valid': len([i for i in issues if i['severity'] == 'error']) == 0,
        'issues': issues
    }


def table_exists(table_name: str) -> bool:
    df = execute_query(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?", (table_name,))
    return not df.empty


def execute_query(query: str, params: tuple = None) -> pd.DataFrame:
    """
    Execute a SQL query and return results as DataFrame

    Args:
        query: SQL query string
        params: Query parameters (optional)

    Returns:
        DataFrame with query results

    Raises:
        LedgerUnavailableError: the store cannot be opened or the query fails
    """
    try:
        conn = get_db_connection()
    except sqlite3.Error as e:
        logger.error(f"Cannot open ledger store at {config.DB_PATH}: {e}")
        raise LedgerUnavailableError(f"cannot open ledger store: {e}") from e

    try:
        if params:
            return pd.read_sql(query, conn, params=params)
        return pd.read_sql(query, conn)
    except (sqlite3.Error, pd.errors.DatabaseError) as e:
        logger.error(f"Ledger query failed: {e}")
        raise LedgerUnavailableError(f"ledger query failed: {e}") from e
    finally:
        conn.close()
