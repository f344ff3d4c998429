#!/usr/bin/env python3
"""Helpers for running the external build, keygen and analysis commands."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional


class CommandError(RuntimeError):
    def __init__(self, message: str, argv: Optional[List[str]] = None, returncode: Optional[int] = None):
        super().__init__(message)
        self.argv = list(argv or [])
        self.returncode = returncode


def run_command(
    name: str,
    argv: List[str],
    cwd: Optional[Path] = None,
    log_path: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> None:
    """Run `argv` to completion; raise CommandError unless it exits 0.

    Failing to open the log file counts as a failure to start the command.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)
    argv = [str(arg) for arg in argv]
    stdout = None
    try:
        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            stdout = open(log_path, "a", encoding="utf-8")
            stdout.write(f"[launcher] running {name}: {' '.join(argv)}\n")
            stdout.flush()
        cp = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=full_env,
            stdout=stdout,
            stderr=subprocess.STDOUT if stdout else None,
            check=False,
        )
    except OSError as exc:
        raise CommandError(f"{name} could not be started: {exc}", argv) from exc
    finally:
        if stdout:
            stdout.close()
    if cp.returncode != 0:
        raise CommandError(f"{name} failed with code {cp.returncode}", argv, cp.returncode)
