[build-system]
requires = ["hatchling>=1.18"]
build-backend = "hatchling.build"

[project]
name = "dapp-ranking"
version = "0.1.0"
description = "Ranks Sui DApps by hourly active users from checkpoint files and stores the rankings in a SQL database."
requires-python = ">=3.10"
keywords = ["sui", "blockchain", "indexer", "dapp", "ranking", "active-users", "checkpoints"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Internet :: Log Analysis",
]
dependencies = [
    "python-dotenv>=1.0",
    "sqlalchemy>=2.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
dapp-checkpoint-processor = "dapp_ranking.processor:main"

[tool.hatch.build.targets.wheel]
packages = ["dapp_ranking"]

[tool.hatch.build.targets.sdist]
include = ["dapp_ranking", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
