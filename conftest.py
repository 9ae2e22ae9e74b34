import os

# Let GitPython import on machines without git so the git-dependent tests can skip.
os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")
