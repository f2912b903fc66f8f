from setuptools import setup, find_packages

setup(
    name="wakekeeper",
    version="0.1.0",
    description="Wakekeeper - keep one application awake and in front, surviving restarts",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "apscheduler>=3.10.0,<4",
        "sqlalchemy>=2.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "pyyaml>=6.0",
        "typer>=0.12.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "wakekeeper=wakekeeper.main:app",
        ],
    },
)
