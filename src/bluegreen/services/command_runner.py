"""Subprocess execution service for bluegreen."""

import subprocess
from typing import List, Optional

from bluegreen.errors import RuntimeClientError


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = True,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
        log_output: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        try:
            result = subprocess.run(
                cmd,
                text=True,
                input=input_text,
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise RuntimeClientError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeClientError(
                f"Command timed out after {effective_timeout}s: {cmd_str}",
                detail=f"{' '.join(cmd[:2])} timed out after {effective_timeout}s",
            ) from exc
        except OSError as exc:
            raise RuntimeClientError(
                f"Failed to execute command: {cmd_str}. {exc}",
                detail=str(exc),
            ) from exc

        if log_output and capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise RuntimeClientError(
                message,
                detail=stderr or f"{' '.join(cmd[:2])} exited with {result.returncode}",
            )

        self.logger.debug(message)
        return result
