# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Wrapper for the restic binary, the engine moving data out of the repository."""

import json
import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import ResticError

logger = logging.getLogger(__name__)


@dataclass
class SetupOptions:
    """Options shared by every restic invocation."""

    repository_env: Dict[str, str]
    scratch_dir: str
    enable_cache: bool = True
    nice_adjustment: Optional[int] = None
    ionice_class: Optional[int] = None
    ionice_class_data: Optional[int] = None


@dataclass
class RestoreOptions:
    """Host scoped restore options."""

    host: str
    source_host: str
    restore_paths: List[str] = field(default_factory=list)
    snapshots: List[str] = field(default_factory=list)


@dataclass
class RestoreOutput:
    """Statistics of a completed restore."""

    hostname: str
    duration: float
    files_restored: int = 0
    bytes_restored: int = 0


class ResticWrapper:
    """Wrapper for the restic binary."""

    def __init__(self, restic_binary_path: str, setup: SetupOptions) -> None:
        """Initialize the ResticWrapper class.

        Args:
            restic_binary_path: The path to the restic binary.
            setup: The repository environment and process settings.
        """
        self._restic_binary_path = restic_binary_path
        self._setup = setup
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._aborted = False

    # PROPERTIES

    @property
    def _cache_flags(self) -> List[str]:
        """Return the restic cache flags."""
        if self._setup.enable_cache:
            return [f"--cache-dir={os.path.join(self._setup.scratch_dir, 'restic-cache')}"]
        return ["--no-cache"]

    @property
    def _priority_prefix(self) -> List[str]:
        """Return the nice and ionice prefix of the restic command."""
        prefix = []
        if self._setup.nice_adjustment is not None:
            prefix += ["nice", "-n", str(self._setup.nice_adjustment)]
        if self._setup.ionice_class is not None:
            prefix += ["ionice", "-c", str(self._setup.ionice_class)]
            if self._setup.ionice_class_data is not None:
                prefix += ["-n", str(self._setup.ionice_class_data)]
        return prefix

    @property
    def aborted(self) -> bool:
        """Whether the running restore was aborted."""
        return self._aborted

    # METHODS

    def _env(self) -> Dict[str, str]:
        return {**os.environ, **self._setup.repository_env, "TMPDIR": self._setup.scratch_dir}

    def _restore_args(self, options: RestoreOptions) -> List[List[str]]:
        """Return the restic arguments of every restore command run for a host."""
        if options.snapshots:
            return [["restore", snapshot, "--target", "/"] for snapshot in options.snapshots]
        return [
            [
                "restore",
                "latest",
                "--host",
                options.source_host,
                "--path",
                path,
                "--target",
                "/",
            ]
            for path in options.restore_paths
        ]

    def _run(self, args: List[str]) -> str:
        """Run a restic command and return its output.

        Raises:
            ResticError: If the command fails or the restore was aborted.
        """
        command = [
            *self._priority_prefix,
            self._restic_binary_path,
            *args,
            "--json",
            *self._cache_flags,
        ]
        with self._lock:
            if self._aborted:
                raise ResticError("restore aborted before 'restic restore' started")
            self._process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env(),
            )
        stdout, stderr = self._process.communicate()
        returncode = self._process.returncode
        with self._lock:
            self._process = None

        if self._aborted:
            raise ResticError("restore aborted while 'restic restore' was running")
        if returncode != 0:
            error_msg = f"'restic {args[0]}' command returned non-zero exit code: {returncode}."
            logger.error(error_msg)
            logger.error("stdout: %s", stdout)
            logger.error("stderr: %s", stderr)
            raise ResticError((stderr or "").strip() or error_msg)
        return stdout

    @staticmethod
    def _parse_summary(output: str) -> Dict[str, int]:
        """Return the files and bytes restored from the JSON summary of restic."""
        summary = {"files_restored": 0, "bytes_restored": 0}
        for line in output.splitlines():
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict) or message.get("message_type") != "summary":
                continue
            summary["files_restored"] += message.get(
                "files_restored", message.get("total_files", 0)
            )
            summary["bytes_restored"] += message.get(
                "bytes_restored", message.get("total_bytes", 0)
            )
        return summary

    def run_restore(self, options: RestoreOptions) -> RestoreOutput:
        """Restore the data of a host from the repository.

        Args:
            options (RestoreOptions): The host scoped restore options.

        Returns:
            RestoreOutput: The statistics of the restore.

        Raises:
            ResticError: If there is nothing to restore, or any restic command fails.
        """
        commands = self._restore_args(options)
        if not commands:
            raise ResticError(f"No restore paths or snapshots specified for host '{options.host}'")

        logger.info(
            "Restoring host '%s' from source host '%s' (%d restic command(s))",
            options.host,
            options.source_host,
            len(commands),
        )
        output = RestoreOutput(hostname=options.host, duration=0.0)
        start = time.monotonic()
        for args in commands:
            summary = self._parse_summary(self._run(args))
            output.files_restored += summary["files_restored"]
            output.bytes_restored += summary["bytes_restored"]
        output.duration = time.monotonic() - start
        return output

    def abort(self) -> None:
        """Abort the running restore by terminating the restic process."""
        with self._lock:
            self._aborted = True
            if self._process is not None and self._process.poll() is None:
                logger.warning("Terminating the running restic process")
                self._process.terminate()
