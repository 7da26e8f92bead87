#!/usr/bin/env python
"""
Cross-platform server management script for the Read Tracker backend.

Usage:
    python scripts/server.py start             # Start backend (production mode, no auto-reload)
    python scripts/server.py start --dev       # Start backend with auto-reload
    python scripts/server.py stop              # Stop backend
    python scripts/server.py restart [--dev]   # Restart backend
    python scripts/server.py status            # Check backend server status
"""

import os
import subprocess
import sys
import time
from pathlib import Path

import httpx
import psutil
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent
LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE = LOG_DIR / "server.log"


def server_address():
    """Host and port from the environment, matching backend settings defaults."""
    return os.environ.get("API_HOST", "localhost"), int(os.environ.get("API_PORT", "8119"))


def find_server_process():
    """Find the running server process by checking for uvicorn serving our app."""
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        try:
            cmdline = proc.info['cmdline']
            if cmdline and 'uvicorn' in ' '.join(cmdline) and 'backend.main:app' in ' '.join(cmdline):
                return proc
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            pass
    return None


def extract_error_from_log():
    """Extract the startup error block written by the backend, if any.

    Returns:
        Error message string if found, None otherwise
    """
    if not LOG_FILE.exists():
        return None

    with open(LOG_FILE, 'r', encoding='utf-8', errors='replace') as f:
        log_text = "".join(f.readlines()[-100:])

    separator = "=" * 80
    runtime_error_pos = log_text.rfind("RuntimeError:")
    if runtime_error_pos != -1:
        after_runtime = log_text[runtime_error_pos:]
        start = after_runtime.find(separator)
        end = after_runtime.find(separator, start + len(separator)) if start != -1 else -1
        if end != -1:
            return after_runtime[start + len(separator):end].strip()

    for line in reversed(log_text.splitlines()):
        if " - ERROR - " in line:
            return line.split(" - ERROR - ", 1)[1].strip()
    return None


def is_healthy(host, port, timeout=1.0):
    try:
        return httpx.get(f"http://{host}:{port}/health", timeout=timeout).is_success
    except httpx.HTTPError:
        return False


def start_server(dev_mode=False):
    """Start the FastAPI server in the background.

    Args:
        dev_mode: Enable auto-reload for the backend server
    """
    # Load environment from .env.local (overrides) then .env
    env_local = PROJECT_ROOT / ".env.local"
    if env_local.exists():
        print(f"Loading .env.local: {env_local}")
        load_dotenv(env_local, override=True)
    load_dotenv(PROJECT_ROOT / ".env")

    host, port = server_address()

    existing = find_server_process()
    if existing:
        print(f"Server is already running (PID: {existing.pid})")
        print(f"Access at: http://{host}:{port}")
        return

    cmd = [
        sys.executable, "-m", "uvicorn", "backend.main:app",
        "--host", host,
        "--port", str(port),
    ]
    if dev_mode:
        cmd.append("--reload")
        print("Starting server in development mode (with auto-reload)...")
    else:
        print("Starting server in production mode...")

    LOG_DIR.mkdir(exist_ok=True)
    with open(LOG_FILE, 'w') as log_file:
        process = subprocess.Popen(
            cmd,
            cwd=PROJECT_ROOT,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            env=os.environ.copy(),
            creationflags=subprocess.CREATE_NEW_PROCESS_GROUP if sys.platform == 'win32' else 0
        )

    # Poll for up to 30 seconds for the server to become ready
    max_wait = 30
    poll_interval = 0.5
    server_ready = False
    for _ in range(int(max_wait / poll_interval)):
        time.sleep(poll_interval)
        if process.poll() is not None:
            break
        if is_healthy(host, port):
            server_ready = True
            break

    if server_ready:
        print(f"[OK] Server started successfully (PID: {process.pid})")
        print(f"[OK] Access at: http://{host}:{port}")
        print(f"[OK] API docs at: http://{host}:{port}/docs")
        print(f"[OK] Logs: {LOG_FILE}")
        print("\nTo stop: python scripts/server.py stop")
        return

    print("[ERROR] Server failed to start")
    error_msg = extract_error_from_log()
    print("\n" + error_msg if error_msg else f"Check logs at: {LOG_FILE}")
    if process.poll() is None:
        process.terminate()
    sys.exit(1)


def stop_server():
    """Stop the running backend server, including reloader children."""
    proc = find_server_process()
    if not proc:
        print("Server is not running")
        return

    print(f"Stopping server (PID: {proc.pid})...")
    try:
        children = proc.children(recursive=True)
        for p in [proc] + children:
            try:
                p.terminate()
            except psutil.NoSuchProcess:
                pass

        gone, alive = psutil.wait_procs([proc] + children, timeout=5)
        for p in alive:
            print(f"Force killing PID {p.pid}...")
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
        print("[OK] Server stopped successfully")
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        print(f"[ERROR] Error stopping server: {e}")


def check_status():
    """Report whether the server is running and answering health checks."""
    load_dotenv(PROJECT_ROOT / ".env")
    host, port = server_address()

    proc = find_server_process()
    if not proc:
        print("[INFO] Backend server is not running")
        return False

    if not is_healthy(host, port, timeout=2.0):
        print(f"[WARN] Backend server process exists (PID: {proc.pid}) but is not responding")
        print(f"  Check logs at: {LOG_FILE}")
        return False

    print(f"[OK] Backend server is running (PID: {proc.pid})")
    print(f"  Access at: http://{host}:{port}")
    try:
        version = httpx.get(f"http://{host}:{port}/api/version", timeout=2).json()
        print(f"  API version: {version.get('api_version', 'unknown')}")
    except (httpx.HTTPError, ValueError):
        pass
    return True


def restart_server(dev_mode=False):
    """Restart the server."""
    print("Restarting server...")
    stop_server()
    time.sleep(1)
    start_server(dev_mode)


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command = sys.argv[1].lower()
    dev_mode = "--dev" in sys.argv

    if command == "start":
        start_server(dev_mode=dev_mode)
    elif command == "stop":
        stop_server()
    elif command == "restart":
        restart_server(dev_mode=dev_mode)
    elif command == "status":
        check_status()
    else:
        print(f"Unknown command: {command}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
