from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional


# PUBLIC_INTERFACE
def validation_issues(errors: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert pydantic/FastAPI error dicts into JSON-safe validation issues.

    Args:
        errors: Items as returned by RequestValidationError.errors().

    Returns:
        List of {"path", "message", "code"} dicts. The leading "body" location
        segment is dropped so paths name fields of the request body; extra
        pydantic context (which may hold exception objects) is discarded.
    """
    issues: List[Dict[str, Any]] = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] == "body":
            loc = loc[1:]
        issues.append(
            {
                "path": [p if isinstance(p, int) else str(p) for p in loc],
                "message": str(err.get("msg", "")),
                "code": str(err.get("type", "")),
            }
        )
    return issues


# PUBLIC_INTERFACE
def error_body(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Build the standard error envelope: {"message": ..., "errors"?: [...]}.
    """
    body: Dict[str, Any] = {"message": message}
    if errors is not None:
        body["errors"] = errors
    return body
