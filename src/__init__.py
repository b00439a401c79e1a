"""Top-level package for epi-inference.

This repository follows the cookiecutter-data-science template where project
code lives under `src/`. The inference engine lives under `src.epiinfer`
(susceptible reconstruction, likelihoods, regression, profile search,
optimisation and simulation).
"""

# Package marker; keep this module lightweight.
