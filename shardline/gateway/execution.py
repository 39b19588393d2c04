"""
Execution — what the confirm workflow hands to the external compile
service, and how a message's content gets there.

  - attachment → (language, code) via the file extension
  - short language names → qualified names
  - qualified name → ExecutionTarget (NONE means we can't run it)
  - fenced code blocks in edited messages → CompileRequest
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable

from pydantic import BaseModel

from shardline.gateway.channels import MessagingPlatform
from shardline.gateway.errors import PlatformError
from shardline.gateway.events import Attachment, Author

logger = logging.getLogger("gateway.execution")

DEFAULT_MAX_ATTACHMENT_BYTES = 1024 * 1024

COMMAND_PREFIX = ";"

SHORTNAME_MAP: dict[str, str] = {
    "cpp": "c++",
    "cc": "c++",
    "cxx": "c++",
    "hpp": "c++",
    "h": "c",
    "py": "python",
    "rs": "rust",
    "js": "javascript",
    "ts": "typescript",
    "cs": "csharp",
    "kt": "kotlin",
    "hs": "haskell",
    "rb": "ruby",
    "pl": "perl",
    "sh": "bash",
    "fs": "fsharp",
    "ex": "elixir",
    "exs": "elixir",
    "erl": "erlang",
    "ml": "ocaml",
    "jl": "julia",
    "vb": "vb",
}

DEFAULT_COMPILED = {
    "c", "c++", "rust", "go", "haskell", "csharp", "fsharp", "kotlin",
    "java", "scala", "swift", "d", "fortran", "pascal", "zig", "ocaml",
}
DEFAULT_INTERPRETED = {
    "python", "javascript", "typescript", "ruby", "perl", "bash", "lua",
    "php", "elixir", "erlang", "julia", "r", "lisp",
}

# ```lang\ncode```, language tag optional
_CODE_BLOCK = re.compile(r"```(?P<lang>[\w+#.-]*)\n(?P<code>.*?)```", re.DOTALL)


def shortname_to_qualified(language: str) -> str:
    lowered = language.strip().lower()
    return SHORTNAME_MAP.get(lowered, lowered)


class ExecutionTarget(str, Enum):
    NONE = "none"
    COMPILER = "compiler"
    INTERPRETER = "interpreter"


class TargetResolver:
    """Decides whether a language can be run, and by which backend."""

    def __init__(
        self,
        compiled: Iterable[str] = DEFAULT_COMPILED,
        interpreted: Iterable[str] = DEFAULT_INTERPRETED,
    ) -> None:
        self._compiled = set(compiled)
        self._interpreted = set(interpreted)

    def resolve(self, language: str) -> ExecutionTarget:
        qualified = shortname_to_qualified(language)
        if qualified in self._compiled:
            return ExecutionTarget.COMPILER
        if qualified in self._interpreted:
            return ExecutionTarget.INTERPRETER
        return ExecutionTarget.NONE


class CompileRequest(BaseModel):
    """A synthesized compile command invocation."""

    language: str
    code: str
    author: Author
    target: ExecutionTarget = ExecutionTarget.NONE

    @property
    def invocation(self) -> str:
        return f"{COMMAND_PREFIX}compile\n```{self.language}\n{self.code}\n```"


class ExecutionResult(BaseModel):
    language: str
    output: str = ""
    success: bool = True


class ExecutionService(ABC):
    """External compile/run service."""

    @abstractmethod
    async def execute(self, request: CompileRequest) -> ExecutionResult:
        """Run the request.  Raises ExecutionError on failure."""


def attachment_language(attachment: Attachment, max_bytes: int) -> str | None:
    """The language implied by an attachment, or None if it doesn't qualify."""
    if attachment.size > max_bytes:
        logger.debug(
            "Attachment %s too large (%d > %d bytes)",
            attachment.filename, attachment.size, max_bytes,
        )
        return None
    _, dot, extension = attachment.filename.rpartition(".")
    if not dot or not extension:
        return None
    return extension.lower()


async def get_message_attachment(
    platform: MessagingPlatform,
    attachments: list[Attachment],
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> tuple[str, str] | None:
    """
    Fetch the first attachment of a message as ``(code, language)``.

    Returns None when there is no attachment, it has no usable extension,
    it is too large, or it can't be downloaded.
    """
    if not attachments:
        return None
    attachment = attachments[0]
    language = attachment_language(attachment, max_bytes)
    if language is None:
        return None
    try:
        code = await platform.fetch_attachment(attachment)
    except PlatformError as exc:
        logger.warning("Could not fetch attachment %s: %s", attachment.filename, exc)
        return None
    return code, language


def parse_code_block(content: str) -> tuple[str, str] | None:
    """Extract ``(language, code)`` from the first fenced block, if any."""
    match = _CODE_BLOCK.search(content)
    if match is None:
        return None
    language = match.group("lang")
    if not language:
        return None
    return shortname_to_qualified(language), match.group("code").rstrip("\n")
