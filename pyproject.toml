[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "etcdkit"
version = "0.1.0"
description = "Helpers for running etcd clusters: volume selection and mounting, cloud URL and metadata handling, member lookups and two command-line tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["etcd", "cluster", "volumes", "gce", "azure", "openstack", "digitalocean", "debian"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
etcdkit-deb-extract = "etcdkit.debextract:main"
etcdkit-verify-boilerplate = "etcdkit.boilerplate:main"

[tool.hatch.build.targets.wheel]
packages = ["etcdkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
