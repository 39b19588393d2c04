"""
Wandbox Execution Service — runs compile requests on a Wandbox-compatible
HTTP API.

Configuration (environment variables):
  WANDBOX_API_URL  — base URL (default: https://wandbox.org/api)
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from shardline.gateway.errors import ExecutionError
from shardline.gateway.execution import (
    CompileRequest,
    ExecutionResult,
    ExecutionService,
    shortname_to_qualified,
)

logger = logging.getLogger("gateway.wandbox")

DEFAULT_API_URL = "https://wandbox.org/api"
REQUEST_TIMEOUT_SECONDS = 60

# qualified language → wandbox compiler name
DEFAULT_COMPILERS: dict[str, str] = {
    "c": "gcc-head-c",
    "c++": "gcc-head",
    "rust": "rust-head",
    "go": "go-head",
    "haskell": "ghc-head",
    "csharp": "mono-head",
    "fsharp": "fsharp-head",
    "kotlin": "kotlin-head",
    "java": "openjdk-head",
    "scala": "scala-head",
    "swift": "swift-head",
    "d": "ldc-head",
    "fortran": "gfortran-head",
    "pascal": "fpc-head",
    "zig": "zig-head",
    "ocaml": "ocaml-head",
    "python": "cpython-head",
    "javascript": "nodejs-head",
    "typescript": "typescript-head",
    "ruby": "ruby-head",
    "perl": "perl-head",
    "bash": "bash",
    "lua": "lua-5.4.6",
    "php": "php-head",
    "elixir": "elixir-head",
    "erlang": "erlang-head",
    "julia": "julia-head",
    "r": "r-head",
    "lisp": "sbcl-head",
}


class WandboxExecutionService(ExecutionService):
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        compilers: dict[str, str] | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._compilers = dict(compilers or DEFAULT_COMPILERS)

    def supports(self, language: str) -> bool:
        return shortname_to_qualified(language) in self._compilers

    async def execute(self, request: CompileRequest) -> ExecutionResult:
        qualified = shortname_to_qualified(request.language)
        compiler = self._compilers.get(qualified)
        if compiler is None:
            raise ExecutionError(f"No compiler available for {request.language}")

        payload = {"compiler": compiler, "code": request.code, "save": False}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self._api_url}/compile.json",
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
                ) as response:
                    if response.status != 200:
                        raise ExecutionError(
                            f"Compiler service returned {response.status}"
                        )
                    data = await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise ExecutionError(f"Compiler service unreachable: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise ExecutionError("Compiler service timed out") from exc

        return self.parse_response(qualified, data)

    @staticmethod
    def parse_response(language: str, data: dict) -> ExecutionResult:
        status = str(data.get("status", "0"))
        compiler_error = data.get("compiler_error", "")
        output = data.get("program_output", "") or data.get("compiler_message", "")
        if compiler_error and not output:
            output = compiler_error
        if data.get("signal"):
            output = f"{output}\n[signal: {data['signal']}]".lstrip("\n")
        return ExecutionResult(
            language=language,
            output=output.strip(),
            success=status == "0" and not compiler_error,
        )
