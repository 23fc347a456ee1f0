#!/usr/bin/env python3
"""Cross-platform install script for bot-console.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Install project
    subprocess.check_call([pip, "install", "--upgrade", "pip"])
    if dev:
        print("Installing bot-console in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[dev]"], cwd=project_dir)
    else:
        print("Installing bot-console...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    # 4. Data directory for the local SQLite archive
    os.makedirs(os.path.join(project_dir, "data"), exist_ok=True)

    # 5. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("bot-console installation complete!")
    print()
    print("Next steps:")
    print("  1. Edit .env - set CONSOLE_API_URL and CONSOLE_API_TOKEN")
    print("  2. Edit config.yaml - timeouts, report limits, storage backend")
    print(f"  3. Activate the virtual environment: {activate_cmd}")
    print("  4. Check config: python -m bot_console config-check")
    print("  5. Chat with a bot: python -m bot_console chat <bot_id>")
    print()


if __name__ == "__main__":
    main()
