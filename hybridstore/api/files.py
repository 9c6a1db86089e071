"""
File migration API endpoints.

This module provides the /api/files endpoints for bulk migration between
providers, migration progress, cleanup and the file inventory.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from ..models.files import FileInventory
from ..models.migration import CleanupSummary, MigrationStatus
from ..models.responses import CleanupRequest, ErrorResponse, MigrateRequest
from ..storage.errors import HybridStorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get(
    "/status",
    response_model=MigrationStatus,
    summary="Migration status",
    description="Progress of the current or most recent file migration"
)
def migration_status(request: Request):
    try:
        return request.app.state.coordinator.migrations.status()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error fetching migration status: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve migration status: {str(e)}")


@router.post(
    "/migrate",
    response_model=MigrationStatus,
    status_code=202,
    responses={
        409: {"model": ErrorResponse, "description": "A migration is already running"},
        412: {"model": ErrorResponse, "description": "Invalid providers or destination unavailable"}
    },
    summary="Start file migration",
    description="Move every file from the source provider to the destination in the background"
)
def start_migration(body: MigrateRequest, request: Request):
    """
    Start a bulk migration.

    Returns as soon as the migration has started; poll /api/files/status
    for progress.
    """
    try:
        return request.app.state.coordinator.migrations.start(body.source, body.destination)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error starting migration: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start migration: {str(e)}")


@router.post(
    "/migrate/cancel",
    response_model=MigrationStatus,
    responses={
        412: {"model": ErrorResponse, "description": "No migration is running"}
    },
    summary="Cancel file migration",
    description="Stop the running migration after the file it is working on"
)
def cancel_migration(request: Request):
    try:
        return request.app.state.coordinator.migrations.cancel()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error cancelling migration: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to cancel migration: {str(e)}")


@router.post(
    "/cleanup",
    response_model=CleanupSummary,
    responses={
        409: {"model": ErrorResponse, "description": "A migration is running"}
    },
    summary="Clean up storage",
    description="Repair or drop broken file records and delete unreferenced objects"
)
def cleanup(request: Request, body: Optional[CleanupRequest] = None):
    try:
        dry_run = body.dry_run if body is not None else False
        return request.app.state.coordinator.migrations.cleanup(dry_run=dry_run)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error cleaning up storage: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to clean up storage: {str(e)}")


@router.get(
    "/inventory",
    response_model=FileInventory,
    summary="File inventory",
    description="Number of registered files per provider"
)
def inventory(request: Request):
    try:
        return request.app.state.coordinator.require_registry().inventory()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error fetching file inventory: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve file inventory: {str(e)}")
