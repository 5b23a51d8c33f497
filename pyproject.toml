[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "accelctl"
version = "0.1.0"
description = "Reconciliation logic that keeps global accelerators, load balancer endpoints and DNS alias records in step with cluster services and ingresses"
requires-python = ">=3.10"
dependencies = []
keywords = ["global-accelerator", "route53", "load-balancer", "kubernetes", "controller", "reconcile", "workqueue"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["accelctl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
