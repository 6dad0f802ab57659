"""Top-level package for the SIR tutorials.

Project code lives under `src/` (cookiecutter-data-science layout). The
models live under `src.sirtutorials` (ODE, jump process, inference) and
plotting helpers under `src.visualization`.
"""

# Package marker; keep this module lightweight.
