from setuptools import find_packages, setup

setup(
    name="coindrafts",
    version="1.0.0",
    packages=find_packages(exclude=("tests",)),
    install_requires=[
        "httpx>=0.25.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "pandas>=2.0.0",
        "numpy>=1.26.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "coindrafts-lifecycle=coindrafts.entrypoints.lifecycle:main",
        ],
    },
    python_requires=">=3.10",
)
