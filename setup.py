from setuptools import setup, find_packages

setup(
    name="ssp-reconcile",
    version="0.1.0",
    description="Reconciles refreshed security-framework catalogs with existing system security plans",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["config", "models", "nodes", "utils"]),
    py_modules=["cli", "pipeline_runner", "reconciler"],
    package_data={"config": ["*.yaml"]},
    python_requires=">=3.10",
    install_requires=[
        "langgraph>=0.2.0",
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "python-dotenv>=1.0",
        "structlog>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ssp-reconcile=cli:main",
        ],
    },
)
