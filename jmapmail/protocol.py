"""JMAP wire protocol definitions: method calls, back-references and typed results."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ResponseShapeError

CORE_CAPABILITY = "urn:ietf:params:jmap:core"
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"
SUBMISSION_CAPABILITY = "urn:ietf:params:jmap:submission"

DEFAULT_USING = [CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY]


class Method(str, Enum):
    """JMAP methods this client issues."""
    MAILBOX_GET = "Mailbox/get"
    MAILBOX_SET = "Mailbox/set"
    EMAIL_QUERY = "Email/query"
    EMAIL_GET = "Email/get"
    EMAIL_SET = "Email/set"
    IDENTITY_GET = "Identity/get"
    EMAIL_SUBMISSION_SET = "EmailSubmission/set"


ERROR_RESPONSE = "error"


@dataclass(frozen=True)
class ResultReference:
    """Placeholder for another call's result, resolved by the server."""
    result_of: str
    name: str
    path: str

    def to_dict(self) -> dict[str, str]:
        return {"resultOf": self.result_of, "name": self.name, "path": self.path}


def creation_reference(creation_id: str) -> str:
    """Refer to a record created earlier in the same request (e.g. ``#email``)."""
    return f"#{creation_id}"


@dataclass(frozen=True)
class CallHandle:
    """Returned by RequestBuilder.add; used to pull that call's result out of a batch."""
    call_id: str
    method: str
    index: int

    def ref(self, path: str = "/ids") -> ResultReference:
        return ResultReference(result_of=self.call_id, name=self.method, path=path)


@dataclass
class MethodCall:
    name: str
    arguments: dict[str, Any]
    call_id: str

    def to_list(self) -> list[Any]:
        args: dict[str, Any] = {}
        for key, value in self.arguments.items():
            if value is None:
                continue
            if isinstance(value, ResultReference):
                args[f"#{key}"] = value.to_dict()
            else:
                args[key] = value
        return [self.name, args, self.call_id]


@dataclass
class MethodResponse:
    name: str
    result: dict[str, Any]
    call_id: str

    @property
    def is_error(self) -> bool:
        return self.name == ERROR_RESPONSE

    @classmethod
    def from_list(cls, data: Any) -> "MethodResponse":
        if not isinstance(data, list) or len(data) != 3:
            raise ResponseShapeError(f"Malformed method response: {data!r}")
        name, result, call_id = data
        if not isinstance(name, str) or not isinstance(result, dict) or not isinstance(call_id, str):
            raise ResponseShapeError(f"Malformed method response: {data!r}")
        return cls(name=name, result=result, call_id=call_id)


class RequestBuilder:
    """Collects method calls for one HTTP exchange.

    Call ids are assigned sequentially ("0", "1", ...) so a later call can
    reference an earlier one through ``handle.ref(path)``.
    """

    def __init__(self, using: list[str] | None = None):
        self.using = list(using or DEFAULT_USING)
        self._calls: list[MethodCall] = []

    def add(self, method: Method | str, arguments: dict[str, Any]) -> CallHandle:
        name = method.value if isinstance(method, Method) else method
        call_id = str(len(self._calls))
        self._calls.append(MethodCall(name=name, arguments=arguments, call_id=call_id))
        return CallHandle(call_id=call_id, method=name, index=len(self._calls) - 1)

    @property
    def calls(self) -> list[MethodCall]:
        return list(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def to_dict(self) -> dict[str, Any]:
        return {
            "using": self.using,
            "methodCalls": [call.to_list() for call in self._calls],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def parse_method_responses(data: Any) -> tuple[list[MethodResponse], str | None]:
    """Parse the top-level response body into method responses and session state."""
    if not isinstance(data, dict) or not isinstance(data.get("methodResponses"), list):
        raise ResponseShapeError("Response body has no methodResponses array")
    responses = [MethodResponse.from_list(item) for item in data["methodResponses"]]
    return responses, data.get("sessionState")


def _require(result: dict[str, Any], key: str, kind: type, method: str) -> Any:
    value = result.get(key)
    if not isinstance(value, kind):
        raise ResponseShapeError(f"{method} response missing {key!r}")
    return value


@dataclass
class GetResult:
    account_id: str
    state: str
    list: list[dict[str, Any]]
    not_found: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, result: dict[str, Any], method: str = "get") -> "GetResult":
        items = _require(result, "list", list, method)
        return cls(
            account_id=result.get("accountId", ""),
            state=result.get("state", ""),
            list=[item for item in items if isinstance(item, dict)],
            not_found=list(result.get("notFound") or []),
        )


@dataclass
class QueryResult:
    account_id: str
    query_state: str
    ids: list[str]
    position: int = 0
    total: int | None = None

    @classmethod
    def from_dict(cls, result: dict[str, Any], method: str = "query") -> "QueryResult":
        ids = _require(result, "ids", list, method)
        total = result.get("total")
        return cls(
            account_id=result.get("accountId", ""),
            query_state=result.get("queryState", ""),
            ids=[str(i) for i in ids],
            position=int(result.get("position") or 0),
            total=total if isinstance(total, int) else None,
        )


@dataclass
class SetError:
    type: str
    description: str = ""
    properties: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "SetError":
        if not isinstance(data, dict):
            return cls(type="unknown")
        return cls(
            type=data.get("type", "unknown"),
            description=data.get("description", ""),
            properties=list(data.get("properties") or []),
        )


@dataclass
class SetResult:
    account_id: str = ""
    new_state: str = ""
    created: dict[str, dict[str, Any]] = field(default_factory=dict)
    updated: dict[str, Any] = field(default_factory=dict)
    destroyed: list[str] = field(default_factory=list)
    not_created: dict[str, SetError] = field(default_factory=dict)
    not_updated: dict[str, SetError] = field(default_factory=dict)
    not_destroyed: dict[str, SetError] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.not_created or self.not_updated or self.not_destroyed)

    @classmethod
    def from_dict(cls, result: dict[str, Any], method: str = "set") -> "SetResult":
        def errors(key: str) -> dict[str, SetError]:
            return {k: SetError.from_dict(v) for k, v in (result.get(key) or {}).items()}

        return cls(
            account_id=result.get("accountId", ""),
            new_state=result.get("newState", ""),
            created=dict(result.get("created") or {}),
            updated=dict(result.get("updated") or {}),
            destroyed=list(result.get("destroyed") or []),
            not_created=errors("notCreated"),
            not_updated=errors("notUpdated"),
            not_destroyed=errors("notDestroyed"),
        )
