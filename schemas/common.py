"""
Response envelope shared by every endpoint: {success, data?, message?, errors?}
"""
from typing import Any, Dict, List, Optional, Union


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def failure(
    message: str,
    errors: Optional[Union[Dict[str, List[str]], List[str]]] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body
