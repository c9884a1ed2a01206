"""Signing executor: runs the external signing tool for one request.

Each invocation runs on a worker thread of a bounded pool, and the worker
drives the signing tool as a separate OS process. The event loop only
awaits the worker's future, so a slow or crashing tool never blocks other
requests. The worker reports back exactly one terminal message:

    {"status": "ok", "output": <stdout>}
    {"status": "error", "error": <stderr or reason>, "returncode": <int|None>}

which is translated into a :class:`SignResult` or a :class:`SignFailure`.
Failures are never retried here: the output path may hold a partial file,
and a caller that retries must clear it first.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from ipa_signer.config import SignerConfig
from ipa_signer.enums import SignFailureKind, SigningStage
from ipa_signer.models.domain import SignResult
from ipa_signer.observability.redaction import redact_argv
from ipa_signer.observability.trace_logging import trace_event
from ipa_signer.services.errors import SigningPipelineError

logger = logging.getLogger(__name__)


class SignFailure(SigningPipelineError):
    """Raised when the external signing operation does not succeed.

    Attributes:
        kind: Which failure mode occurred.
        stderr: Raw stderr of the tool, when it produced any.
        returncode: Exit code of the tool, when it exited.
    """

    default_stage = SigningStage.SIGNING

    def __init__(
        self,
        kind: SignFailureKind,
        message: str,
        *,
        stderr: str | None = None,
        returncode: int | None = None,
        suffix: str | None = None,
    ) -> None:
        super().__init__(message, suffix=suffix)
        self.kind = kind
        self.stderr = stderr
        self.returncode = returncode


def build_sign_command(
    tool_path: str | Path,
    *,
    certificate_path: Path,
    profile_path: Path,
    package_path: Path,
    output_path: Path,
    certificate_password: str | None = None,
) -> list[str]:
    """Argument vector for one signing run.

    Every value is a discrete argument; nothing is ever joined into a shell
    string, so passwords and file names cannot inject commands.
    """
    argv = [str(tool_path), "-k", str(certificate_path), "-m", str(profile_path)]
    if certificate_password:
        argv += ["-p", certificate_password]
    argv += ["-o", str(output_path), str(package_path)]
    return argv


def _run_signing_tool(argv: list[str], timeout: float | None) -> dict[str, Any]:
    """Worker body: run the tool and produce the terminal message."""
    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        return {"status": "error", "kind": SignFailureKind.TOOL_NOT_FOUND, "error": str(e)}
    except subprocess.TimeoutExpired:
        return {
            "status": "error",
            "kind": SignFailureKind.TIMEOUT,
            "error": f"Signing tool timed out after {timeout}s",
        }
    except OSError as e:
        return {"status": "error", "kind": SignFailureKind.PROCESS_ERROR, "error": str(e)}

    if proc.returncode != 0:
        stderr = (proc.stderr or "").strip()
        if stderr:
            return {
                "status": "error",
                "kind": SignFailureKind.PROCESS_ERROR,
                "error": stderr,
                "returncode": proc.returncode,
            }
        return {
            "status": "error",
            "kind": SignFailureKind.NON_ZERO_EXIT,
            "error": f"Signing tool exit code {proc.returncode}",
            "returncode": proc.returncode,
        }

    return {"status": "ok", "output": proc.stdout or ""}


class SigningExecutor:
    """Runs one signing operation per call in an isolated worker.

    The worker pool size caps how many signing processes run at once;
    additional requests wait for a free slot.
    """

    def __init__(self, config: SignerConfig) -> None:
        """Initialize the executor.

        Args:
            config: Service configuration (tool name, bundled dir, limits).
        """
        self.config = config
        self._pool = ThreadPoolExecutor(
            max_workers=config.max_concurrent_signings,
            thread_name_prefix="signing",
        )

    def resolve_tool(self) -> Path:
        """Locate the signing executable.

        Prefers a tool on PATH, then the bundled binary next to the service.

        Raises:
            SignFailure: With kind TOOL_NOT_FOUND if neither exists.
        """
        on_path = shutil.which(self.config.signing_tool_name)
        if on_path:
            return Path(on_path)

        bundled = self.config.bundled_tool_path
        if bundled.is_file():
            return bundled

        raise SignFailure(
            SignFailureKind.TOOL_NOT_FOUND,
            f"Signing tool '{self.config.signing_tool_name}' not found on PATH "
            f"or at {bundled}",
        )

    async def sign(
        self,
        *,
        certificate_path: Path,
        profile_path: Path,
        package_path: Path,
        output_path: Path,
        certificate_password: str | None = None,
        suffix: str | None = None,
    ) -> SignResult:
        """Sign ``package_path`` into ``output_path``.

        Returns:
            SignResult with the tool's stdout.

        Raises:
            SignFailure: On any failure; the kind tells which.
        """
        try:
            tool = self.resolve_tool()
        except SignFailure as e:
            e.suffix = suffix
            raise

        argv = build_sign_command(
            tool,
            certificate_path=certificate_path,
            profile_path=profile_path,
            package_path=package_path,
            output_path=output_path,
            certificate_password=certificate_password,
        )
        trace_event("sign.tool.start", argv=redact_argv(argv))
        logger.info("Running signing tool for %s", suffix or package_path.name)

        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(
                self._pool,
                _run_signing_tool,
                argv,
                self.config.signing_timeout_seconds,
            )
        except Exception as e:
            raise SignFailure(
                SignFailureKind.CHANNEL_ERROR,
                f"Signing worker failed: {e}",
                suffix=suffix,
            ) from e

        return self._interpret(message, output_path, suffix)

    def _interpret(
        self,
        message: Any,
        output_path: Path,
        suffix: str | None,
    ) -> SignResult:
        """Translate the worker's terminal message."""
        if not isinstance(message, dict) or message.get("status") not in ("ok", "error"):
            raise SignFailure(
                SignFailureKind.CHANNEL_ERROR,
                "Signing worker returned no terminal message",
                suffix=suffix,
            )

        if message["status"] == "ok":
            trace_event("sign.tool.ok", output_path=str(output_path))
            return SignResult(output_path=output_path, output=message.get("output", ""))

        kind = SignFailureKind(message.get("kind", SignFailureKind.PROCESS_ERROR))
        error = str(message.get("error") or "Signing failed")
        stderr = error if kind == SignFailureKind.PROCESS_ERROR else None
        trace_event(
            "sign.tool.error",
            error=error,
            error_type=kind.value,
            returncode=message.get("returncode"),
        )
        raise SignFailure(
            kind,
            error,
            stderr=stderr,
            returncode=message.get("returncode"),
            suffix=suffix,
        )

    def shutdown(self) -> None:
        """Stop accepting work; running signings finish in their threads."""
        self._pool.shutdown(wait=False, cancel_futures=True)
