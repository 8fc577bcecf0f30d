[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "conesteer"
version = "0.1.0"
description = "Steering angle estimation from blue and yellow track cones in camera frames"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "steering",
    "cones",
    "computer-vision",
    "hsv",
    "autonomous-driving",
    "image-processing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["conesteer"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
