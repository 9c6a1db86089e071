"""
Database failover API endpoints.

This module provides the /api/database endpoints for checking health,
initializing the backup, switching the active database, syncing
primary data into the backup and taking JSON snapshots.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, Response

from ..models.health import DatabaseHealth, InitSummary, SnapshotInfo, SyncSummary
from ..models.responses import CreateSnapshotRequest, ErrorResponse, SwitchDatabaseRequest
from ..storage.errors import HybridStorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/database", tags=["Database"])


@router.get(
    "/status",
    response_model=DatabaseHealth,
    summary="Database health",
    description="Probe the primary and backup databases and report which one is active"
)
def database_status(request: Request):
    try:
        return request.app.state.failover.get_health()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error checking database health: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to check database health: {str(e)}")


@router.post(
    "/initialize-backup",
    response_model=InitSummary,
    responses={
        207: {"model": ErrorResponse, "description": "Schema partially created"},
        503: {"model": ErrorResponse, "description": "Backup database unreachable"}
    },
    summary="Initialize backup schema",
    description="Create the schema on the backup database; a no-op if it already exists"
)
def initialize_backup(request: Request):
    try:
        return request.app.state.failover.initialize_backup()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error initializing backup database: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to initialize backup database: {str(e)}")


@router.post(
    "/switch",
    response_model=DatabaseHealth,
    responses={
        412: {"model": ErrorResponse, "description": "Target database is not healthy"}
    },
    summary="Switch active database",
    description="Make the target database active after a fresh health check"
)
def switch_database(body: SwitchDatabaseRequest, request: Request):
    """
    Switch the active database.

    The target is probed immediately before the switch; an unhealthy target
    is refused and the active database stays as it was.
    """
    try:
        logger.info(f"Database switch to {body.target.value} requested")
        return request.app.state.failover.switch_to(body.target)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error switching database: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to switch database: {str(e)}")


@router.post(
    "/sync",
    response_model=SyncSummary,
    responses={
        207: {"model": SyncSummary, "description": "Some tables failed to sync"},
        412: {"model": ErrorResponse, "description": "Primary or backup database unavailable"}
    },
    summary="Sync primary to backup",
    description="Copy all primary data into the backup database, overwriting its contents"
)
def sync_databases(request: Request, response: Response):
    try:
        summary = request.app.state.failover.sync_primary_to_backup()
        if not summary.complete:
            response.status_code = 207
        return summary
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error syncing databases: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to sync databases: {str(e)}")


@router.get(
    "/backups",
    response_model=List[SnapshotInfo],
    responses={
        412: {"model": ErrorResponse, "description": "Snapshots are not configured"}
    },
    summary="List snapshots",
    description="List the JSON database snapshots on disk, newest first"
)
def list_snapshots(request: Request):
    try:
        return request.app.state.failover.list_snapshots()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing snapshots: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to list snapshots: {str(e)}")


@router.post(
    "/backups",
    response_model=SnapshotInfo,
    status_code=201,
    responses={
        412: {"model": ErrorResponse, "description": "Snapshots disabled or source database unavailable"},
        503: {"model": ErrorResponse, "description": "Snapshot could not be read or written"}
    },
    summary="Create snapshot",
    description="Write a JSON snapshot of a database (the active one by default); old snapshots beyond the retention count are deleted"
)
def create_snapshot(request: Request, body: Optional[CreateSnapshotRequest] = None):
    body = body or CreateSnapshotRequest()
    try:
        source = body.source.value if body.source else "active"
        logger.info(f"Snapshot of the {source} database requested ({body.reason})")
        return request.app.state.failover.create_snapshot(body.source, reason=body.reason)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating snapshot: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create snapshot: {str(e)}")
