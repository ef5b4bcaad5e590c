from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from fsbucket.services import signature
from fsbucket.services.path_safety import is_safe_path
from logger_config import setup_logger

logger = setup_logger()

ALLOWED_QUERY_KEYS = ("signature", "expires")


class RejectionReason(str, Enum):
    INVALID_QUERY = "invalid_query"
    MISSING_SIGNATURE = "missing_signature"
    MISSING_EXPIRES = "missing_expires"
    INVALID_PATH = "invalid_path"
    INVALID_SIGNATURE = "invalid_signature"


# Path and signature failures share a message so callers can't tell them apart
REJECTION_MESSAGES = {
    RejectionReason.INVALID_QUERY: "Invalid query",
    RejectionReason.MISSING_SIGNATURE: "Query parameter required: signature",
    RejectionReason.MISSING_EXPIRES: "Query parameter required: expires",
    RejectionReason.INVALID_PATH: "Access denied",
    RejectionReason.INVALID_SIGNATURE: "Access denied",
}


@dataclass(frozen=True)
class Authorized:
    path: str


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason]


AuthorizationOutcome = Union[Authorized, Rejected]

QueryParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _query_items(query_params: QueryParams) -> List[Tuple[str, str]]:
    # Starlette's QueryParams keeps repeated keys in multi_items()
    if hasattr(query_params, "multi_items"):
        return list(query_params.multi_items())
    if isinstance(query_params, Mapping):
        return list(query_params.items())
    return list(query_params)


def authorize(
    method: str,
    request_path: str,
    query_params: QueryParams,
    secret: str,
    now: Optional[float] = None,
) -> AuthorizationOutcome:
    """Decide whether a request may access request_path with the given method."""
    items = _query_items(query_params)
    keys = [key for key, _ in items]

    # Disallow other query parameters, and repeated ones
    if any(key not in ALLOWED_QUERY_KEYS for key in keys) or len(keys) != len(set(keys)):
        return _reject(method, request_path, RejectionReason.INVALID_QUERY)

    params = dict(items)
    tag = params.get("signature")
    expires = params.get("expires")
    if not tag:
        return _reject(method, request_path, RejectionReason.MISSING_SIGNATURE)
    if not expires:
        return _reject(method, request_path, RejectionReason.MISSING_EXPIRES)

    if not is_safe_path(request_path):
        return _reject(method, request_path, RejectionReason.INVALID_PATH)

    if not signature.verify(method, request_path, expires, secret, tag, now=now):
        return _reject(method, request_path, RejectionReason.INVALID_SIGNATURE)

    return Authorized(path=request_path)


def _reject(method: str, request_path: str, reason: RejectionReason) -> Rejected:
    logger.info(f"Rejected {method} {request_path!r}: {reason.value}")
    return Rejected(reason=reason)
