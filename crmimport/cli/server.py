"""crmimport server control script.

Usage:
    crmimport-server start [--port PORT] [--host HOST] [--reload] [--foreground]
    crmimport-server stop
    crmimport-server status
"""

import argparse
import json
import os
import signal
import subprocess
import sys
import time
import urllib.request
from pathlib import Path

from crmimport.config import settings

APP_PATH = "crmimport.main:app"


def _pid_file() -> Path:
    return settings.data_dir / "crmimport.pid"


def _log_file() -> Path:
    return settings.log_dir / "crmimport-server.log"


def read_pid() -> int | None:
    """Return the PID of the running server, clearing a stale PID file."""
    pid_file = _pid_file()
    if not pid_file.exists():
        return None

    try:
        pid = int(pid_file.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        pid_file.unlink(missing_ok=True)
        return None


def start_server(host: str, port: int, reload: bool = False, foreground: bool = False) -> bool:
    """Start uvicorn serving the crmimport app.

    Returns:
        True if the server started.
    """
    pid = read_pid()
    if pid:
        print(f"Server is already running (PID: {pid})")
        return False

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.log_dir.mkdir(parents=True, exist_ok=True)

    cmd = [sys.executable, "-m", "uvicorn", APP_PATH, "--host", host, "--port", str(port)]
    if reload:
        cmd.append("--reload")
    elif settings.workers > 1:
        cmd.extend(["--workers", str(settings.workers)])

    print(f"Starting crmimport on http://{host}:{port}")

    if foreground:
        try:
            subprocess.run(cmd)
        except KeyboardInterrupt:
            print("\nServer stopped")
        return True

    with open(_log_file(), "w") as log:
        process = subprocess.Popen(
            cmd,
            stdout=log,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )

    time.sleep(1)
    if process.poll() is not None:
        print(f"Failed to start server. See {_log_file()}")
        return False

    _pid_file().write_text(str(process.pid))
    print(f"Server started with PID: {process.pid}")
    return True


def stop_server() -> bool:
    """Stop the background server, escalating to SIGKILL after 5 seconds.

    Returns:
        True if a server was stopped.
    """
    pid = read_pid()
    if not pid:
        print("Server is not running")
        return False

    print(f"Stopping server (PID: {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
        for _ in range(10):
            time.sleep(0.5)
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                break
        else:
            print("Server didn't stop gracefully, forcing...")
            os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        print("Server was not running")
    except PermissionError:
        print(f"Permission denied to stop process {pid}")
        return False

    _pid_file().unlink(missing_ok=True)
    print("Server stopped")
    return True


def server_status(port: int) -> None:
    pid = read_pid()
    if not pid:
        print("crmimport server is not running")
        return

    print(f"crmimport server is running (PID: {pid})")
    try:
        with urllib.request.urlopen(f"http://localhost:{port}/health", timeout=2) as response:
            data = json.loads(response.read().decode())
        print(f"  Status: {data.get('status', 'unknown')}")
        print(f"  Version: {data.get('version', 'unknown')}")
    except OSError:
        print("  (Could not fetch health status)")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="crmimport server control script")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    start_parser = subparsers.add_parser("start", help="Start the server")
    start_parser.add_argument("--port", "-p", type=int, default=settings.port)
    start_parser.add_argument("--host", default=settings.host)
    start_parser.add_argument("--reload", "-r", action="store_true", help="Auto-reload on changes")
    start_parser.add_argument("--foreground", "-f", action="store_true", help="Run in foreground")

    subparsers.add_parser("stop", help="Stop the server")

    status_parser = subparsers.add_parser("status", help="Check server status")
    status_parser.add_argument("--port", "-p", type=int, default=settings.port)

    args = parser.parse_args()

    if args.command == "start":
        return 0 if start_server(args.host, args.port, args.reload, args.foreground) else 1
    if args.command == "stop":
        return 0 if stop_server() else 1
    if args.command == "status":
        server_status(args.port)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
