"""
Run registry - one row per feature job execution in the runs table.
Records status, instruments in, rows out, timing and the failure message.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional
from enum import Enum

from storage.loaders import format_timestamp


class RunStatus(str, Enum):
    """Lifecycle states of a job run."""
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


class RunNotFoundError(Exception):
    """Raised when a run id has no row in the runs table."""
    pass


_RUN_COLUMNS = (
    'run_id', 'dag_name', 'started_at', 'finished_at', 'status',
    'rows_in', 'rows_out', 'error_message'
)


def start_run(
    conn: sqlite3.Connection,
    dag_name: str,
    started_at: Optional[datetime] = None
) -> int:
    """
    Insert a RUNNING row for a job.

    Args:
        conn: SQLite connection
        dag_name: Job name, e.g. 'compute_indicators' or 'correlation_matrix'
        started_at: Start timestamp (defaults to now)

    Returns:
        The new run id
    """
    cursor = conn.execute(
        "INSERT INTO runs (dag_name, started_at, status) VALUES (?, ?, ?)",
        (dag_name, format_timestamp(started_at or datetime.now()), RunStatus.RUNNING.value)
    )
    conn.commit()
    return cursor.lastrowid


def finish_run(
    conn: sqlite3.Connection,
    run_id: int,
    status: RunStatus,
    finished_at: Optional[datetime] = None,
    rows_in: Optional[int] = None,
    rows_out: Optional[int] = None,
    error_message: Optional[str] = None
) -> None:
    """
    Close a run with its final status and counts.

    Args:
        conn: SQLite connection
        run_id: Id returned by start_run()
        status: COMPLETED or FAILED
        finished_at: End timestamp (defaults to now)
        rows_in: Instruments (or pairs) the job looked at
        rows_out: Rows the job wrote
        error_message: Failure message for FAILED runs

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    cursor = conn.execute(
        "UPDATE runs SET status = ?, finished_at = ?, rows_in = ?, rows_out = ?, error_message = ? "
        "WHERE run_id = ?",
        (
            RunStatus(status).value,
            format_timestamp(finished_at or datetime.now()),
            rows_in, rows_out, error_message, run_id
        )
    )
    if cursor.rowcount == 0:
        raise RunNotFoundError(f"Run ID {run_id} not found")
    conn.commit()


def get_run_status(conn: sqlite3.Connection, run_id: int) -> Dict[str, Any]:
    """
    One run as a dictionary, with duration_seconds when it has finished.

    Raises:
        RunNotFoundError: If run_id doesn't exist
    """
    row = conn.execute(
        f"SELECT {', '.join(_RUN_COLUMNS)} FROM runs WHERE run_id = ?", (run_id,)
    ).fetchone()
    if row is None:
        raise RunNotFoundError(f"Run ID {run_id} not found")
    return _row_to_run(row)


def list_recent_runs(
    conn: sqlite3.Connection,
    limit: int = 50,
    dag_name: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Most recent runs first, optionally for a single job."""
    query = f"SELECT {', '.join(_RUN_COLUMNS)} FROM runs"
    params: List[Any] = []
    if dag_name:
        query += " WHERE dag_name = ?"
        params.append(dag_name)
    query += " ORDER BY started_at DESC, run_id DESC LIMIT ?"
    params.append(limit)

    return [_row_to_run(row) for row in conn.execute(query, params).fetchall()]


def get_dag_stats(conn: sqlite3.Connection, dag_name: str, days: int = 30) -> Dict[str, Any]:
    """
    Run counts for one job since midnight `days` days ago.

    Returns:
        Dictionary with total/completed/failed runs, total rows written and
        success_rate (None when there were no runs)
    """
    midnight = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    total, completed, failed, rows_out = conn.execute(
        """
        SELECT COUNT(*),
               SUM(status = 'completed'),
               SUM(status = 'failed'),
               SUM(COALESCE(rows_out, 0))
        FROM runs
        WHERE dag_name = ? AND started_at >= ?
        """,
        (dag_name, format_timestamp(midnight - timedelta(days=days)))
    ).fetchone()

    completed = completed or 0
    return {
        'dag_name': dag_name,
        'period_days': days,
        'total_runs': total,
        'completed_runs': completed,
        'failed_runs': failed or 0,
        'total_rows_out': rows_out or 0,
        'success_rate': completed / total if total else None
    }


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value.replace(' ', 'T')) if value else None


def _row_to_run(row: tuple) -> Dict[str, Any]:
    run = dict(zip(_RUN_COLUMNS, row))
    run['started_at'] = _parse(run['started_at'])
    run['finished_at'] = _parse(run['finished_at'])
    run['status'] = RunStatus(run['status'])

    if run['started_at'] and run['finished_at']:
        run['duration_seconds'] = int((run['finished_at'] - run['started_at']).total_seconds())
    else:
        run['duration_seconds'] = None
    return run
