from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..errors import StorageUnavailableError
from ..repositories import Repository
from ..schemas import ErrorOut, TaskCreate, TaskOut, TaskUpdate, task_out

logger = logging.getLogger(__name__)

NOT_FOUND = "Todo not found"
UNAVAILABLE = "Storage unavailable"

router = APIRouter(
    prefix="/api/todos",
    tags=["todos"],
    responses={
        500: {"model": ErrorOut, "description": "Unexpected storage failure"},
        503: {"model": ErrorOut, "description": "Storage backend unavailable"},
    },
)


# PUBLIC_INTERFACE
def get_repository(request: Request) -> Repository:
    """
    Dependency returning the repository injected into the application by
    create_app().
    """
    return request.app.state.repository


@contextmanager
def _storage_errors(message: str) -> Iterator[None]:
    """
    Translate storage failures raised inside the block into HTTP errors:
    StorageUnavailableError -> 503, anything else -> 500 with `message`.
    Internal details are logged, never returned.
    """
    try:
        yield
    except HTTPException:
        raise
    except StorageUnavailableError:
        logger.warning("%s: storage unavailable", message, exc_info=True)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE)
    except Exception:
        logger.exception(message)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TaskOut],
    summary="List Todos",
    description="Return every todo, most recently created first.",
    responses={200: {"description": "List retrieved successfully"}},
)
def list_todos(repo: Repository = Depends(get_repository)) -> List[TaskOut]:
    """
    List all todos.
    """
    with _storage_errors("Failed to fetch todos"):
        items = repo.list()
    return [task_out(it) for it in items]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TaskOut,
    summary="Get Todo",
    description="Get a single todo by ID.",
    responses={
        200: {"description": "Todo found"},
        404: {"model": ErrorOut, "description": "Todo not found"},
    },
)
def get_todo(todo_id: str, repo: Repository = Depends(get_repository)) -> TaskOut:
    """
    Retrieve a single todo by its ID.
    """
    with _storage_errors("Failed to fetch todo"):
        item = repo.get(todo_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return task_out(item)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new todo and return the created resource.",
    responses={
        201: {"description": "Todo created successfully"},
        400: {"model": ErrorOut, "description": "Validation error"},
    },
)
def create_todo(payload: TaskCreate, repo: Repository = Depends(get_repository)) -> TaskOut:
    """
    Create a new todo.
    """
    with _storage_errors("Failed to create todo"):
        created = repo.create(payload)
    return task_out(created)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TaskOut,
    summary="Update Todo",
    description="Partially update the text and/or completion flag of a todo.",
    responses={
        200: {"description": "Todo updated"},
        400: {"model": ErrorOut, "description": "Validation error"},
        404: {"model": ErrorOut, "description": "Todo not found"},
    },
)
def patch_todo(todo_id: str, payload: TaskUpdate, repo: Repository = Depends(get_repository)) -> TaskOut:
    """
    Partial update of a todo.
    """
    with _storage_errors("Failed to update todo"):
        updated = repo.update(todo_id, payload)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return task_out(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    description="Delete a todo by ID.",
    responses={
        204: {"description": "Todo deleted"},
        404: {"model": ErrorOut, "description": "Todo not found"},
    },
)
def delete_todo(todo_id: str, repo: Repository = Depends(get_repository)) -> None:
    """
    Delete a todo. Returns 204 on success, 404 if not found.
    """
    with _storage_errors("Failed to delete todo"):
        ok = repo.delete(todo_id)
    if not ok:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return None
