"""A minimal JSON-RPC 2.0 client over HTTP."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from urllib.parse import urlsplit

import requests

PROTOCOL_VERSION = "2.0"


@dataclass(frozen=True)
class Request:
    """A JSON-RPC request."""

    method: str
    params: Any = None
    id: Any = None
    jsonrpc: str = PROTOCOL_VERSION

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            body["id"] = self.id
        body["method"] = self.method
        body["params"] = self.params
        return body


class RpcError(Exception):
    """An error object returned by the remote end."""

    def __init__(
        self, code: int, message: str, data: Any = None, status_code: int | None = None
    ) -> None:
        super().__init__(code, message, data)
        self.code = code
        self.message = message
        self.data = data
        self.status_code = status_code

    def __str__(self) -> str:
        data = "<nil>" if self.data is None else self.data
        detail = f"({self.code}) {self.message}: {data}"
        if self.status_code is None:
            return detail
        return f"rpc error: status code {self.status_code}: {detail}"


@dataclass(frozen=True)
class Response:
    """A JSON-RPC response; ``has_result`` tells whether a result member was present."""

    jsonrpc: str = ""
    id: Any = None
    result: Any = None
    has_result: bool = False
    error: RpcError | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Response:
        if not isinstance(data, dict):
            raise ValueError(f"response must be an object, got {type(data).__name__}")
        error = data.get("error")
        rpc_error = None
        if error is not None:
            if not isinstance(error, dict):
                raise ValueError("error must be an object")
            code = error.get("code", 0)
            if isinstance(code, bool) or not isinstance(code, int):
                raise ValueError(f"invalid error code: {code!r}")
            message = error.get("message") or ""
            if not isinstance(message, str):
                raise ValueError("error message must be a string")
            rpc_error = RpcError(code, message, error.get("data"))
        version = data.get("jsonrpc") or ""
        if not isinstance(version, str):
            raise ValueError("jsonrpc must be a string")
        return cls(
            jsonrpc=version,
            id=data.get("id"),
            result=data.get("result"),
            has_result="result" in data,
            error=rpc_error,
        )


class Client:
    """Sends JSON-RPC calls to a single HTTP endpoint."""

    def __init__(self, url: str, timeout: timedelta | float | None = None) -> None:
        try:
            urlsplit(url).port
        except ValueError as err:
            raise ValueError(f"invalid url: {err}") from err
        self.url = url
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else timeout
        self._timeout = seconds if seconds else None
        self._session = requests.Session()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def call(self, method: str, params: Any = None) -> Any:
        """Call ``method`` with ``params`` and return the decoded result."""
        try:
            body = json.dumps(Request(method, params, id=-1).to_dict())
        except (TypeError, ValueError) as err:
            raise TypeError(f"marshal params: {err}") from err

        http_response = self._session.post(
            self.url,
            data=body,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )
        status = http_response.status_code
        try:
            response = Response.from_dict(http_response.json())
        except ValueError as err:
            raise ValueError(f"unmarshal response: status code {status}: {err}") from err

        if response.error is not None:
            error = response.error
            raise RpcError(error.code, error.message, error.data, status_code=status)
        if not response.has_result:
            raise ValueError("unmarshal result: missing result")
        return response.result