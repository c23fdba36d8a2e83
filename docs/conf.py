"""Sphinx configuration for the secrfit API reference."""

from __future__ import annotations

from importlib import metadata

project = "secrfit"
author = "secrfit developers"

try:
    release = metadata.version("secrfit")
except metadata.PackageNotFoundError:  # pragma: no cover - docs built from a checkout
    release = "0.0.1-alpha"
version = ".".join(release.split(".")[:2])

extensions = [
    "myst_parser",
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.mathjax",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
]

source_suffix = {".md": "markdown"}
root_doc = "index"
exclude_patterns = ["_build"]

html_theme = "sphinx_rtd_theme"

# Detection functions and estimators are documented with their formulas.
myst_enable_extensions = ["dollarmath"]
autodoc_typehints = "description"
autodoc_member_order = "bysource"

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
    "pandas": ("https://pandas.pydata.org/docs/", None),
    "lmfit": ("https://lmfit.github.io/lmfit-py/", None),
}
