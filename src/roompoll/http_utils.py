from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class HttpClient:
    """
    轻量 HTTP 客户端（仅依赖标准库），供 HttpMessageSource 调用聊天 API。

    - 单次请求，不做重试：失败计数与重试节奏由轮询引擎负责
    - 4xx/5xx 不抛异常，原样返回 HttpResponse，由调用方解析错误体
    - 连接失败、超时等传输层错误照常抛出
    """

    def __init__(self, *, timeout_seconds: float = 10.0, user_agent: str = "roompoll/0") -> None:
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent

    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        request_headers = {"User-Agent": self._user_agent, "Accept": "application/json"}
        if headers:
            request_headers.update(dict(headers))

        req = urllib.request.Request(url=url, headers=request_headers, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout_seconds) as resp:
                return HttpResponse(
                    status=getattr(resp, "status", 200),
                    url=resp.geturl(),
                    headers={k: v for k, v in resp.headers.items()},
                    body=resp.read(),
                )
        except urllib.error.HTTPError as e:
            return HttpResponse(
                status=e.code,
                url=url,
                headers={k: v for k, v in (e.headers or {}).items()},
                body=e.read() or b"",
            )


def with_query_params(url: str, params: Mapping[str, str | None]) -> str:
    parsed = urllib.parse.urlparse(url)
    q = dict(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True))
    q.update({k: v for k, v in params.items() if v is not None})
    new_query = urllib.parse.urlencode(q)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
