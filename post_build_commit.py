#!/usr/bin/env python3
"""
Post-build auto-commit script.

Run this after building the project. When any watched source file changed
since the last commit (or the repository is brand new) it runs the freshly
built executable, captures its output to output/welcome_output_<n>.txt and
commits the sources, the output and the run counter, pushing to origin when
a remote is configured.

Usage:
    python post_build_commit.py <repo_root> <target_name> <dest_dir>

Examples:
    python post_build_commit.py . welcome build/Debug
    python post_build_commit.py /src/welcome welcome /src/welcome/build

Configuration is read from AUTOCOMMIT_* environment variables or a .env
file, e.g. AUTOCOMMIT_WATCH__FILES='["main.cpp", "CMakeLists.txt"]'.
The script always exits with status 0.
"""

from services.auto_commit.cli import cli


if __name__ == "__main__":
    cli()
