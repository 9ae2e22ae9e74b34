"""
Post-build Auto-Commit Service.

This service is responsible for:
- Bootstrapping a git repository for a freshly built project
- Detecting changes in watched source files
- Running the built executable and capturing its output
- Committing and pushing the results after each build
"""

__version__ = "1.0.0"
__author__ = "AutoCommit Team"
__description__ = "Post-build run capture and auto-commit service"

import os

GIT_REFRESH_ENV_VAR = "GIT_PYTHON_REFRESH"

# GitPython fails to import without a git binary unless the refresh mode is
# quiet; the default applies to this process only and is kept from children.
GIT_REFRESH_DEFAULTED = GIT_REFRESH_ENV_VAR not in os.environ
if GIT_REFRESH_DEFAULTED:
    os.environ[GIT_REFRESH_ENV_VAR] = "quiet"
