"""
Errors
======

Exception taxonomy for the tutorial verifier. Parse and dependency errors are
fatal to a run; execution errors are reported per block.
"""

from typing import Iterable, Optional


class VerifierError(Exception):
    """Base class for all verifier errors."""


class ConfigurationError(VerifierError):
    """Invalid settings or connection parameters."""


class ParseError(VerifierError):
    """Malformed fence or annotation in the document."""

    def __init__(self, message: str, line: int, excerpt: str = "") -> None:
        self.line = line
        self.excerpt = excerpt
        text = f"line {line}: {message}"
        if excerpt:
            text += f" -- {excerpt!r}"
        super().__init__(text)


class DependencyCycleError(VerifierError):
    """The blocks cannot be ordered because their dependencies form a cycle."""

    def __init__(self, indices: Iterable[int], names: Optional[dict[int, list[str]]] = None) -> None:
        self.indices = sorted(indices)
        self.names = names or {}
        parts = []
        for index in self.indices:
            needed = self.names.get(index)
            parts.append(f"#{index} (needs {', '.join(needed)})" if needed else f"#{index}")
        super().__init__(f"Dependency cycle between blocks: {', '.join(parts)}")


class ExecutionError(VerifierError):
    """The database rejected a block."""

    def __init__(self, message: str, block_index: Optional[int] = None, statement: str = "") -> None:
        self.message = message
        self.block_index = block_index
        self.statement = statement
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = f"block #{self.block_index}: " if self.block_index is not None else ""
        text = f"{prefix}{self.message.strip()}"
        if self.statement:
            text += f"\n  statement: {self.statement}"
        return text

    def for_block(self, block_index: int, statement: str) -> "ExecutionError":
        """Attach block context to an error raised by a session."""
        self.block_index = block_index
        self.statement = statement
        self.args = (self._format(),)
        return self


class BlockTimeoutError(ExecutionError, TimeoutError):
    """A block ran longer than the configured timeout."""


class MismatchError(VerifierError):
    """A block's output diverged from its expectation."""

    def __init__(self, block_index: int, diff: str, message: str = "") -> None:
        self.block_index = block_index
        self.diff = diff
        text = f"block #{block_index}: output does not match expectation"
        if message:
            text += f" ({message})"
        if diff:
            text += "\n" + diff
        super().__init__(text)


class RunCancelled(VerifierError):
    """The run was cancelled by a termination signal."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"Run cancelled by signal {signum}")
