"""Domain types for the daemon session: tabs, actions, network events, cookies.

Actions and network events are small tagged unions built from frozen
dataclasses. ``to_dict`` returns the wire form that goes over the socket.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Union

from wbrowse.core.errors import ValidationError

SAME_SITE_VALUES = ("Strict", "Lax", "None")


def _iso(value: datetime) -> str:
    return value.isoformat()


@dataclass(frozen=True)
class NavigateAction:
    """Navigation of the current tab via ``go``."""
    type: ClassVar[str] = "go"
    url: str
    timestamp: datetime = field(default_factory=datetime.now)

    def options(self) -> Dict[str, Any]:
        return {"url": self.url}

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "timestamp": _iso(self.timestamp), "options": self.options()}


@dataclass(frozen=True)
class DumpAction:
    """Content dump of the current tab."""
    type: ClassVar[str] = "dump"
    html: bool
    offset: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def options(self) -> Dict[str, Any]:
        return {"html": self.html, "offset": self.offset}

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "timestamp": _iso(self.timestamp), "options": self.options()}


@dataclass(frozen=True)
class InteractAction:
    """Natural-language interaction executed by the engine's actor."""
    type: ClassVar[str] = "interact"
    instructions: str
    timestamp: datetime = field(default_factory=datetime.now)

    def options(self) -> Dict[str, Any]:
        return {"instructions": self.instructions}

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "timestamp": _iso(self.timestamp), "options": self.options()}


Action = Union[NavigateAction, DumpAction, InteractAction]


@dataclass
class Tab:
    """
    A named, independently navigable tab.

    The tab name is the key in the session's tab map and is not stored here.
    ``actions`` is append-only.
    """
    url: str
    actions: List[Action] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)

    def record(self, action: Action) -> None:
        self.actions.append(action)

    def to_dict(self, tab_name: Optional[str] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "actions": [action.to_dict() for action in self.actions],
            "startTime": _iso(self.start_time),
        }
        if tab_name is not None:
            data["tabName"] = tab_name
        return data


@dataclass(frozen=True)
class RequestEvent:
    type: ClassVar[str] = "request"
    request_id: str
    timestamp: float
    url: str
    method: str
    headers: Dict[str, str]
    body: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
        }
        if self.body is not None:
            options["body"] = self.body
        return {
            "type": self.type,
            "requestId": self.request_id,
            "timestamp": self.timestamp,
            "options": options,
        }


@dataclass(frozen=True)
class ResponseEvent:
    type: ClassVar[str] = "response"
    request_id: str
    timestamp: float
    url: str
    status: int
    headers: Dict[str, str]
    body: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "url": self.url,
            "status": self.status,
            "headers": dict(self.headers),
        }
        if self.body is not None:
            options["body"] = self.body
        return {
            "type": self.type,
            "requestId": self.request_id,
            "timestamp": self.timestamp,
            "options": options,
        }


NetworkEvent = Union[RequestEvent, ResponseEvent]


@dataclass(frozen=True)
class InteractResult:
    description: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"description": self.description, "url": self.url}


@dataclass(frozen=True)
class Cookie:
    """Browser cookie, passed through to the engine untouched."""
    name: str
    value: str
    domain: str
    path: str
    expires: float
    http_only: bool
    secure: bool
    same_site: str
    partition_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Cookie":
        """
        Build a cookie from its wire form (camelCase keys).

        Raises:
            ValidationError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Cookie must be an object, got {type(data).__name__}")

        def require(key: str, kinds: tuple) -> Any:
            value = data.get(key)
            if isinstance(value, bool) and bool not in kinds:
                raise ValidationError(f"Cookie field '{key}' has invalid type")
            if not isinstance(value, kinds):
                raise ValidationError(f"Cookie field '{key}' is missing or invalid")
            return value

        same_site = data.get("sameSite")
        if same_site not in SAME_SITE_VALUES:
            raise ValidationError(
                f"Cookie field 'sameSite' must be one of {', '.join(SAME_SITE_VALUES)}"
            )
        partition_key = data.get("partitionKey")
        if partition_key is not None and not isinstance(partition_key, str):
            raise ValidationError("Cookie field 'partitionKey' must be a string")

        return cls(
            name=require("name", (str,)),
            value=require("value", (str,)),
            domain=require("domain", (str,)),
            path=require("path", (str,)),
            expires=require("expires", (int, float)),
            http_only=require("httpOnly", (bool,)),
            secure=require("secure", (bool,)),
            same_site=same_site,
            partition_key=partition_key,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "expires": self.expires,
            "httpOnly": self.http_only,
            "secure": self.secure,
            "sameSite": self.same_site,
        }
        if self.partition_key is not None:
            data["partitionKey"] = self.partition_key
        return data
