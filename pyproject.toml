[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "exptran"
version = "0.1.0"
description = "Multilinear face model fitting: tensor model construction, weak-perspective pose helpers and identity/expression weight estimation from tracked 2D feature points"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "face model",
    "multilinear",
    "tensor",
    "svd",
    "nelder-mead",
    "non-negative least squares",
    "weak perspective",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.setuptools.packages.find]
include = ["exptran*"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
