[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xvkit"
version = "0.1.0"
description = "Models of a small x86 teaching kernel: paging, locks, system call arguments, a user heap, a shell parser and wc"
requires-python = ">=3.10"
dependencies = []
keywords = ["kernel", "paging", "x86", "shell", "allocator", "education"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
xvkit-wc = "xvkit.wc:main"

[tool.hatch.build.targets.wheel]
packages = ["xvkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
